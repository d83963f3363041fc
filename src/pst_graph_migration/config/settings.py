"""Configuration and environment settings for the migration tool."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_SUPPORTED_ITEM_CLASSES: list[str] = [
    "IPM.Note",
    "IPM.Note.Draft",
    "IPM.Note.SMIME",
    "IPM.Note.SMIME.MultipartSigned",
    "IPM.Appointment",
    "IPM.Contact",
]

DEFAULT_SUPPORTED_FOLDER_CLASSES: list[str] = [
    "IPF.Note",
    "IPF.Appointment",
    "IPF.Contact",
]

DEFAULT_SKIP_FOLDERS: list[str] = [
    "Search Root",
    "SPAM Search Folder",
    "SPAM Search Folder 2",
    "Deleted Items",
    "Conversation Action Settings",
    "Dateien",
    "Files",
    "Einstellungen für QuickSteps",
    "Einstellungen für Unterhaltungsaktionen",
    "ExternalContacts",
    "Journal",
    "GAL Contacts",
    "Recipient Cache",
    "Notizen",
    "Notes",
    "Postausgang",
    "Outbox",
    "RSS-Feeds",
    "Yammer-Stamm",
    "Recoverable Items",
    "Organizational Contacts",
    "PeopleCentricConversation Buddies",
    "RSS-Abonnements",
    "Synchronisierungsprobleme",
]


def _parse_list(value: object) -> object:
    """Parse a list setting from JSON or comma-separated values.

    Args:
        value: Raw env value.

    Returns:
        Parsed value (list or original).
    """
    if value is None:
        return []
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return []
        if stripped.startswith("["):
            return json.loads(stripped)
        return [part.strip() for part in stripped.split(",") if part.strip()]
    return value


class GraphSettings(BaseSettings):
    """Microsoft Graph app registration and target mailbox."""

    model_config = SettingsConfigDict(extra="forbid")

    tenant_id: Annotated[str, Field(min_length=1)]
    client_id: Annotated[str, Field(min_length=1)]
    client_secret: Annotated[str, Field(min_length=1, repr=False)]
    target_mailbox: Annotated[str, Field(min_length=3, pattern=r".+@.+\..+")]

    base_url: Annotated[str, Field(min_length=1)] = "https://graph.microsoft.com/v1.0"
    authority_host: Annotated[str, Field(min_length=1)] = "https://login.microsoftonline.com"
    timeout_seconds: Annotated[float, Field(gt=0, le=600)] = 60.0

    @field_validator("base_url", "authority_host")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        """Drop trailing slashes so paths can be joined safely."""
        return value.strip().rstrip("/")


class ArchiveSettings(BaseSettings):
    """Source PST file and folder/item selection."""

    model_config = SettingsConfigDict(extra="forbid")

    pst_file: Path
    anchor_folder_name: Annotated[str, Field(min_length=1)] = "Top of Personal Folders"

    skip_folders: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_SKIP_FOLDERS),
    )
    supported_item_classes: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_SUPPORTED_ITEM_CLASSES),
    )
    supported_folder_classes: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_SUPPORTED_FOLDER_CLASSES),
    )

    @field_validator("pst_file")
    @classmethod
    def _pst_file_must_exist(cls, value: Path) -> Path:
        """Ensure the archive exists and is a file.

        Args:
            value: Path to the PST file.

        Returns:
            The resolved path.

        Raises:
            ValueError: If the path does not exist or is not a file.
        """
        resolved = value.expanduser().resolve()
        if not resolved.exists():
            msg = f"pst_file does not exist: {resolved}"
            raise ValueError(msg)
        if not resolved.is_file():
            msg = f"pst_file is not a file: {resolved}"
            raise ValueError(msg)
        return resolved

    @field_validator(
        "skip_folders",
        "supported_item_classes",
        "supported_folder_classes",
        mode="before",
    )
    @classmethod
    def _parse_lists(cls, value: object) -> object:
        """Accept JSON arrays or comma-separated strings from the environment."""
        return _parse_list(value)


class ImportSettings(BaseSettings):
    """Dedup and default-container behaviour."""

    model_config = SettingsConfigDict(extra="forbid")

    best_effort_create_on_check_failure: bool = True
    delivery_window_seconds: Annotated[int, Field(ge=0, le=3600)] = 60

    default_contact_folder_names: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["contacts", "kontakte"],
    )
    default_calendar_names: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["calendar", "kalender"],
    )

    local_timezone: str | None = None
    message_id_domain: str | None = None

    @field_validator("default_contact_folder_names", "default_calendar_names", mode="before")
    @classmethod
    def _parse_names(cls, value: object) -> object:
        """Accept JSON arrays or comma-separated strings from the environment."""
        return _parse_list(value)

    @field_validator("default_contact_folder_names", "default_calendar_names")
    @classmethod
    def _lowercase_names(cls, value: list[str]) -> list[str]:
        """Normalize alias names for case-insensitive comparison.

        Args:
            value: Raw alias names.

        Returns:
            Lower-cased, de-duplicated names.

        Raises:
            ValueError: If no alias remains.
        """
        result: list[str] = []
        for name in value:
            lowered = name.strip().lower()
            if lowered and lowered not in result:
                result.append(lowered)
        if not result:
            raise ValueError("at least one default container name is required")
        return result

    @field_validator("local_timezone")
    @classmethod
    def _timezone_must_exist(cls, value: str | None) -> str | None:
        """Validate the IANA timezone name.

        Args:
            value: Timezone name or None for the system zone.

        Returns:
            The stripped name.

        Raises:
            ValueError: If the zone is unknown.
        """
        if value is None or not value.strip():
            return None
        stripped = value.strip()
        try:
            ZoneInfo(stripped)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown local_timezone: {stripped!r}") from exc
        return stripped

    @field_validator("message_id_domain")
    @classmethod
    def _domain_not_blank(cls, value: str | None) -> str | None:
        """Treat blank domains as unset."""
        if value is None:
            return None
        stripped = value.strip().lstrip("@")
        return stripped or None


class RetrySettings(BaseSettings):
    """Backoff policy for throttled or failing Graph requests."""

    model_config = SettingsConfigDict(extra="forbid")

    attempts: Annotated[int, Field(ge=1, le=20)] = 3
    base_delay_s: Annotated[float, Field(ge=0, le=60)] = 0.5
    max_delay_s: Annotated[float, Field(ge=0, le=600)] = 30.0
    jitter_s: Annotated[float, Field(ge=0, le=10)] = 0.25


class StorageSettings(BaseSettings):
    """Settings for report storage."""

    model_config = SettingsConfigDict(extra="forbid")

    reports_dir: Path = Path("./reports")

    @field_validator("reports_dir")
    @classmethod
    def _reports_dir_to_absolute(cls, value: Path) -> Path:
        """Resolve the reports directory to an absolute path."""
        return value.expanduser().resolve()


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(extra="forbid")

    level: Annotated[str, Field(min_length=1)] = "INFO"
    json_logs: bool = False


class AppSettings(BaseSettings):
    """Top-level application settings."""

    model_config = SettingsConfigDict(
        env_prefix="MIG_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="forbid",
    )

    graph: GraphSettings | None = None
    archive: ArchiveSettings | None = None
    imports: ImportSettings = Field(default_factory=ImportSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(*, env_file: Path | None) -> AppSettings:
    """Load validated settings from environment and optional file.

    Args:
        env_file: Optional .env file path.

    Returns:
        Validated AppSettings instance.
    """
    if env_file is None:
        return AppSettings()
    return AppSettings(_env_file=env_file)  # type: ignore[call-arg]
