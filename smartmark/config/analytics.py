from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ._validators import _parse_bounded_int, _parse_csv

DEFAULT_CATEGORY_PALETTE = ("blue", "green", "purple", "yellow", "red", "indigo")


class AnalyticsConfig(BaseModel):
    """Windows and palette used by the dashboard and analytics views."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    recent_window_days: int = Field(default=7, validation_alias="SMARTMARK_RECENT_WINDOW_DAYS")
    daily_activity_days: int = Field(default=7, validation_alias="SMARTMARK_DAILY_ACTIVITY_DAYS")
    recent_list_limit: int = Field(default=5, validation_alias="SMARTMARK_RECENT_LIST_LIMIT")
    category_palette: tuple[str, ...] = Field(
        default=DEFAULT_CATEGORY_PALETTE,
        validation_alias="SMARTMARK_CATEGORY_PALETTE",
        description="Color tags assigned to categories in first-appearance order",
    )

    @field_validator(
        "recent_window_days", "daily_activity_days", "recent_list_limit", mode="before"
    )
    @classmethod
    def _parse_int_fields(cls, value: Any, info: ValidationInfo) -> int:
        default = cls.model_fields[info.field_name].default
        name = info.field_name.replace("_", " ").capitalize()
        return _parse_bounded_int(value, name=name, default=default, low=1, high=366)

    @field_validator("category_palette", mode="before")
    @classmethod
    def _parse_palette(cls, value: Any) -> tuple[str, ...]:
        palette = _parse_csv(value)
        return palette or DEFAULT_CATEGORY_PALETTE
