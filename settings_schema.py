from typing import Literal

from pydantic import BaseModel, Field, ValidationError


class AppSettings(BaseModel):
    db_path: str = "fitness_tracker.db"
    default_username: str = Field("user", min_length=1)
    default_password: str = "password"
    default_user_id: int = Field(1, ge=1)
    seed_exercises: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    api_prefix: str = "/api"


def validate_settings(data: dict) -> AppSettings:
    try:
        return AppSettings(**data)
    except ValidationError as e:
        raise ValueError(str(e))
