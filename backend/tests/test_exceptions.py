from timetabling.core.exceptions import (
    AppError,
    ConfigurationError,
    FormatError,
    GenerationFailure,
    GenerationInProgressError,
    NoActiveTimetableError,
    NotFoundError,
)


def test_app_error_defaults():
    err = AppError("Generic error")
    assert err.status_code == 500
    assert err.details == {}
    assert str(err) == "Generic error"


def test_error_taxonomy_structure():
    assert FormatError("9am").status_code == 422
    assert isinstance(FormatError("9am"), ValueError)
    assert NoActiveTimetableError("add slot").message == "Cannot add slot: no active timetable"
    assert NotFoundError("Timetable", "tt-1").message == "Timetable with id tt-1 not found"
    assert GenerationInProgressError("tt-1").details == {"timetable_id": "tt-1"}
    assert GenerationInProgressError().details == {}

    err = GenerationFailure(message="Solver crashed", details={"foo": "bar"})
    assert err.status_code == 502
    assert err.details == {"foo": "bar"}

    for error in (
        FormatError("x"),
        NoActiveTimetableError("undo"),
        NotFoundError("Conflict", "c1"),
        GenerationInProgressError(),
        err,
        ConfigurationError("bad"),
    ):
        assert isinstance(error, AppError)
