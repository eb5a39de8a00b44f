from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from timetabling.services.time_arithmetic import to_minutes


BACKEND_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    # Resolve to backend/.env so the engine picks it up from any cwd.
    model_config = SettingsConfigDict(
        env_file=str(BACKEND_ENV_FILE),
        env_file_encoding="utf-8",
        env_prefix="TIMETABLING_",
        extra="ignore",
    )

    project_name: str = "Timetabling Engine"

    # Number of undo steps kept; the buffer holds one more entry for the present state.
    history_limit: int = Field(default=20, ge=1, le=1000)

    detect_student_overlaps: bool = False

    generation_timeout_seconds: float | None = Field(default=None, gt=0)
    default_generated_by: str = "system"

    working_day_start: str | None = None
    working_day_end: str | None = None

    @model_validator(mode="after")
    def validate_working_day(self) -> "Settings":
        if (self.working_day_start is None) != (self.working_day_end is None):
            raise ValueError("working_day_start and working_day_end must be set together")
        if self.working_day_start is not None and self.working_day_end is not None:
            if to_minutes(self.working_day_end) <= to_minutes(self.working_day_start):
                raise ValueError("working_day_end must be after working_day_start")
        return self

    @property
    def working_hours(self) -> tuple[int, int] | None:
        if self.working_day_start is None or self.working_day_end is None:
            return None
        return to_minutes(self.working_day_start), to_minutes(self.working_day_end)


@lru_cache
def get_settings() -> Settings:
    return Settings()
