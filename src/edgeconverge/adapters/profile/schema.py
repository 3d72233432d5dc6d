"""Pydantic models for the local profile server payload."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class LocalProfile(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    local_profile: str = Field(default="", alias="localProfile")
    server_token: str = Field(default="", alias="serverToken")
