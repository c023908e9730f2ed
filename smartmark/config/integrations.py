from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ._validators import _parse_bounded_int

DEFAULT_STORE_URL = "http://localhost:54321"


class RemoteStoreConfig(BaseModel):
    """Hosted bookmark store (PostgREST-style API plus change feed)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str = Field(default=DEFAULT_STORE_URL, validation_alias="SMARTMARK_STORE_URL")
    api_key: str = Field(default="", validation_alias="SMARTMARK_STORE_API_KEY")
    table: str = Field(default="bookmarks", validation_alias="SMARTMARK_STORE_TABLE")
    timeout_sec: int = Field(default=30, validation_alias="SMARTMARK_STORE_TIMEOUT_SEC")
    max_retries: int = Field(default=0, validation_alias="SMARTMARK_STORE_MAX_RETRIES")

    @field_validator("url", mode="before")
    @classmethod
    def _validate_url(cls, value: Any) -> str:
        url = str(value or DEFAULT_STORE_URL).strip()
        if not url:
            return DEFAULT_STORE_URL
        if not url.startswith(("http://", "https://")):
            msg = "Store URL must start with http:// or https://"
            raise ValueError(msg)
        return url.rstrip("/")

    @field_validator("table", mode="before")
    @classmethod
    def _validate_table(cls, value: Any) -> str:
        table = str(value or "bookmarks").strip()
        if not table.replace("_", "").isalnum():
            msg = "Store table name may only contain letters, digits and underscores"
            raise ValueError(msg)
        return table

    @field_validator("timeout_sec", "max_retries", mode="before")
    @classmethod
    def _parse_int_fields(cls, value: Any, info: ValidationInfo) -> int:
        default = cls.model_fields[info.field_name].default
        if info.field_name == "timeout_sec":
            return _parse_bounded_int(value, name="Store timeout", default=default, low=1, high=600)
        return _parse_bounded_int(value, name="Store max retries", default=default, low=0, high=10)
