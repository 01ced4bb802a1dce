"""Pydantic schemas for anonymous-to-authenticated migration."""

from __future__ import annotations

from pydantic import Field

from cafe_api.schemas.common import CamelModel


class MigrationResponse(CamelModel):
    success: bool = True
    migrated_count: int = Field(..., description="Interaction records re-keyed to the user.")
    errors: list[str] = Field(default_factory=list)
    already_migrated: bool = Field(
        False, description="True when this address/user pair was migrated before."
    )
    rate_limit_merged: bool = Field(
        False, description="True when an active address counter was folded into the user's."
    )
