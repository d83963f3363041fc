"""Base Pydantic model configuration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class AppModel(BaseModel):
    """Base model for settings-adjacent domain objects and reports.

    Unknown fields are rejected and assignments are re-validated so counters and
    descriptors cannot drift into invalid states mid-run.
    """

    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        validate_default=True,
        validate_assignment=True,
    )
