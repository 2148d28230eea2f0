"""Dated backups of every repository in GitHub organizations and a personal account."""

from __future__ import annotations

from .config import BackupConfig, load_config  # noqa: F401
from .orchestrator import BackupOrchestrator  # noqa: F401
