"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables
  - Fall back to a .env file
  - Validate types and constraints at startup

The settings object is passed explicitly into the pipeline constructor;
nothing reads process-wide defaults at run time.

Only AppSettings is a BaseSettings instance. Sub-settings are plain BaseModel
classes populated via env_nested_delimiter="__", so RECONCILE__ACL_URI maps
to reconcile.acl_uri, GATEWAY__URL to gateway.url, etc. List values are
given as JSON, e.g. RECONCILE__DEVICES='["405419896", "303986753"]'.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the .env file relative to the project root (two levels above this file),
# so settings load correctly regardless of the working directory at runtime.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class ReconcileSettings(BaseModel):
    """
    What to reconcile, and where keys, reports and templates live.

    `no_verify` disables signature verification of the fetched ACL. It is
    meant for operator debugging only; every bypass is logged as a warning.
    """

    acl_uri: str = Field(description="URI of the signed ACL archive (http(s)://, s3://, file://)")
    report_uri: str | None = Field(
        default=None,
        description="URI to upload the signed report archive to (upload skipped if unset)",
    )
    devices: list[str] = Field(description="Controller ids to reconcile")
    keys_dir: Path = Field(
        default=Path("/etc/acl-reconcile/keys"),
        description="Directory of signer public keys, named <signer>.pub",
    )
    key_file: Path = Field(
        default=Path("/etc/acl-reconcile/keys/acl-reconcile.key"),
        description="PEM RSA private key used to sign uploaded reports",
    )
    signer_id: str = Field(
        default="acl-reconcile",
        description="Signer name embedded in uploaded report archives",
    )
    workdir: Path = Field(
        default=Path("/var/lib/acl-reconcile"),
        description="Directory for local report files",
    )
    template_file: Path | None = Field(
        default=None,
        description="Jinja2 template overriding the built-in report layout",
    )
    no_verify: bool = Field(default=False, description="Skip ACL signature verification")
    no_report: bool = Field(
        default=False,
        description="Print the report to stdout instead of writing a local file",
    )

    @field_validator("acl_uri")
    @classmethod
    def require_acl_uri(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("acl_uri must not be empty")
        return value.strip()

    @field_validator("devices", mode="before")
    @classmethod
    def normalise_devices(cls, value: Any) -> Any:
        """Accept numeric ids (JSON numbers) and reject empty or repeated ids."""
        if not isinstance(value, list):
            return value
        devices = [str(item).strip() for item in value]
        if not devices or any(not device for device in devices):
            raise ValueError("devices must be a non-empty list of non-empty ids")
        if len(set(devices)) != len(devices):
            raise ValueError(f"devices contains duplicate ids: {devices}")
        return devices


class GatewaySettings(BaseModel):
    """Controller gateway used to read the current ACL from each device."""

    url: str = Field(description="Base URL of the controller REST gateway")
    max_workers: int = Field(default=4, ge=1, description="Devices polled concurrently")


class S3Settings(BaseModel):
    """Object storage transport configuration."""

    region: str = Field(default="us-east-1")
    credentials_file: Path | None = Field(
        default=None,
        description="AWS shared-credentials file (default boto3 lookup if unset)",
    )
    profile: str | None = Field(
        default=None,
        description="Profile to read from the credentials file (AWS_PROFILE or default if unset)",
    )


class SchedulerSettings(BaseModel):
    """
    Optional periodic execution, using a standard 5-field cron expression.

    Unset (the default) means run once and exit.
    Format: minute hour day-of-month month day-of-week, e.g. "0 2 * * *".
    """

    cron: str | None = Field(
        default=None,
        description="Cron expression (5 fields: minute hour dom month dow)",
    )

    @field_validator("cron")
    @classmethod
    def validate_cron(cls, value: str | None) -> str | None:
        """Reject expressions that don't have exactly 5 space-separated fields."""
        if value is None or not value.strip():
            return None
        fields = value.strip().split()
        if len(fields) != 5:
            raise ValueError(
                f"Cron expression must have exactly 5 fields "
                f"(minute hour dom month dow), got {len(fields)}: {value!r}"
            )
        return value.strip()


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    reconcile: ReconcileSettings
    gateway: GatewaySettings
    s3: S3Settings = Field(default_factory=lambda: S3Settings())
    scheduler: SchedulerSettings = Field(default_factory=lambda: SchedulerSettings())

    http_timeout_seconds: int = Field(default=60, ge=1)
    run_on_startup: bool = Field(default=True)
    log_level: str = Field(default="INFO")
