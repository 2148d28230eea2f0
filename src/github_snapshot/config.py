from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from croniter import CroniterBadCronError, croniter
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TOKEN_ENV = "GITHUB_TOKEN"
ENV_PREFIX = "GITHUB_SNAPSHOT_"

# Values shipped in sample configs that must never reach the API.
PLACEHOLDER_TOKENS = frozenset({"your_token_here", "GITHUB_TOKEN", "changeme"})

TOKEN_HELP = """\
To get a GitHub token:
1. Go to GitHub.com -> Settings -> Developer settings -> Personal access tokens
2. Click 'Tokens (classic)' -> 'Generate new token (classic)'
3. Select 'repo' and 'read:org' permissions
4. Export it as GITHUB_TOKEN (or the variable named by auth.token_env)"""


class ConfigurationError(Exception):
    """Raised when the backup configuration is invalid or incomplete."""


class GitHubAuthConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    token: Optional[str] = Field(default=None, description="Explicit token string (discouraged).")
    token_env: str = Field(default=DEFAULT_TOKEN_ENV, description="Environment variable containing token.")

    def resolved_token(self) -> Optional[str]:
        if self.token:
            return self.token.strip()
        value = os.getenv(self.token_env)
        return value.strip() if value else None


class SchedulerConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    cron: str
    timezone: str = "UTC"
    run_on_startup: bool = True

    @field_validator("cron")
    @classmethod
    def _validate_cron(cls, value: str) -> str:
        try:
            croniter(value, datetime.now(ZoneInfo("UTC")))
        except (CroniterBadCronError, ValueError) as exc:  # pragma: no cover - library errors
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc
        return value

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except ZoneInfoNotFoundError as exc:  # pragma: no cover - library errors
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value


class BackupConfig(BaseModel):
    """Settings for a backup run. Built once at startup and never mutated."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    clone_orgs: bool = True
    clone_personal: bool = True
    orgs: Tuple[str, ...] = ()
    username: Optional[str] = None
    auth: GitHubAuthConfig = GitHubAuthConfig()
    debug: bool = False
    output_dir: Path = Path(".")
    api_url: str = DEFAULT_API_URL
    http_timeout: float = Field(default=30, gt=0)
    clone_timeout: float = Field(default=3600, gt=0)
    retention_days: int = Field(default=0, ge=0)
    log_level: str = "INFO"
    scheduler: Optional[SchedulerConfig] = None

    @field_validator("orgs", mode="before")
    @classmethod
    def _split_orgs(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.split(",")
        return value

    @field_validator("orgs")
    @classmethod
    def _dedupe_orgs(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        seen: Dict[str, None] = {}
        for org in value:
            org = org.strip()
            if org:
                seen.setdefault(org, None)
        return tuple(seen)

    @field_validator("username")
    @classmethod
    def _blank_username(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("output_dir")
    @classmethod
    def _expand_output_dir(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("api_url")
    @classmethod
    def _strip_api_url(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def accounts_enabled(self) -> bool:
        return bool((self.clone_orgs and self.orgs) or (self.clone_personal and self.username))

    def require_token(self) -> str:
        token = self.auth.resolved_token()
        if not token or token in PLACEHOLDER_TOKENS:
            raise ConfigurationError(f"GitHub token is required!\n\n{TOKEN_HELP}")
        return token


def _env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for key in ("orgs", "username", "clone_orgs", "clone_personal", "debug", "output_dir", "api_url"):
        value = env.get(f"{ENV_PREFIX}{key.upper()}")
        if value is not None:
            overrides[key] = value
    if env.get("LOG_LEVEL"):
        overrides["log_level"] = env["LOG_LEVEL"]
    return overrides


def load_config(
    path: Optional[Path] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> BackupConfig:
    """Build the configuration from an optional YAML file, the environment and explicit overrides.

    Later sources win: file, then ``GITHUB_SNAPSHOT_*`` variables, then ``overrides``
    (typically command line flags). ``None`` values in ``overrides`` are ignored.
    """
    raw: Dict[str, Any] = {}
    if path is not None:
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")
        with path.open("r", encoding="utf-8") as fh:
            try:
                raw = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a mapping")

    raw.update(_env_overrides(os.environ if env is None else env))
    raw.update({key: value for key, value in (overrides or {}).items() if value is not None})

    try:
        return BackupConfig.model_validate(raw)
    except Exception as exc:  # noqa: BLE001
        raise ConfigurationError(str(exc)) from exc
