import os
import sys

import pytest
import yaml

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Database, SettingsRepository
from errors import ValidationError
from settings_schema import DEFAULT_SETTINGS, validate_settings


@pytest.mark.asyncio
async def test_defaults_created_once(tmp_path):
    async with Database(str(tmp_path / "settings.db")) as db:
        repo = SettingsRepository(db)
        first = await repo.get()
        assert {k: first[k] for k in DEFAULT_SETTINGS} == DEFAULT_SETTINGS
        await repo.get()
        assert await repo.count() == 1


@pytest.mark.asyncio
async def test_update_field(tmp_path):
    async with Database(str(tmp_path / "update.db")) as db:
        repo = SettingsRepository(db)
        updated = await repo.update_field("units", "kg")
        assert updated["units"] == "kg"
        assert (await repo.get())["units"] == "kg"

        with pytest.raises(ValidationError):
            await repo.update_field("units", "stone")
        with pytest.raises(ValidationError):
            await repo.update_field("backup_frequency", "hourly")
        with pytest.raises(ValidationError):
            await repo.update_field("font_size", 12)
        assert (await repo.get())["units"] == "kg"


@pytest.mark.asyncio
async def test_reset_and_record_backup(tmp_path):
    async with Database(str(tmp_path / "reset.db")) as db:
        repo = SettingsRepository(db)
        await repo.update_field("theme", "light")
        stamped = await repo.record_backup("2024-05-01T12:00:00")
        assert stamped["last_backup"] == "2024-05-01T12:00:00"
        reset = await repo.reset_defaults()
        assert reset["theme"] == "dark"
        assert reset["last_backup"] is None


@pytest.mark.asyncio
async def test_yaml_mirror(tmp_path):
    yaml_path = str(tmp_path / "settings.yaml")
    async with Database(str(tmp_path / "mirror.db")) as db:
        repo = SettingsRepository(db, yaml_path=yaml_path)
        await repo.update_field("units", "kg")
        with open(yaml_path, "r", encoding="utf-8") as f:
            mirrored = yaml.safe_load(f)
        assert mirrored["units"] == "kg"
        assert set(mirrored) == set(DEFAULT_SETTINGS)


def test_validate_settings():
    assert validate_settings({}) == DEFAULT_SETTINGS
    assert validate_settings({"backup_reminders": False})["backup_reminders"] is False
    with pytest.raises(ValidationError):
        validate_settings({"theme": "solarized"})
    with pytest.raises(ValidationError):
        validate_settings({"colour": "red"})
