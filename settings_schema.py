from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, ValidationError as SchemaError

from errors import ValidationError

DEFAULT_SETTINGS = {
    "units": "lbs",
    "theme": "dark",
    "backup_reminders": True,
    "backup_frequency": "weekly",
    "last_backup": None,
}


class SettingsSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    units: Literal["lbs", "kg"] = "lbs"
    theme: Literal["dark", "light"] = "dark"
    backup_reminders: bool = True
    backup_frequency: Literal["daily", "weekly", "monthly"] = "weekly"
    last_backup: Optional[str] = None


def validate_settings(data: dict) -> dict:
    try:
        return SettingsSchema(**data).model_dump()
    except SchemaError as e:
        raise ValidationError(str(e)) from e
