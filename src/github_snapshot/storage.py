from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

from .config import BackupConfig
from .github.repositories import Account, AccountKind

DATE_FORMAT = "%Y-%m-%d"
SUMMARY_FILENAME = "BACKUP_SUMMARY.txt"
MANIFEST_FILENAME = "manifest.json"


@dataclass(frozen=True)
class BackupRun:
    """Everything about one run that is fixed once the workspace exists."""

    date: str
    base_path: Path
    workspace: Path
    accounts: Tuple[Account, ...]
    clone_orgs: bool
    clone_personal: bool
    username: Optional[str] = None

    @property
    def org_accounts(self) -> Tuple[Account, ...]:
        return tuple(a for a in self.accounts if a.kind is AccountKind.ORG)

    @property
    def personal_accounts(self) -> Tuple[Account, ...]:
        return tuple(a for a in self.accounts if a.kind is AccountKind.USER)

    @property
    def summary_path(self) -> Path:
        return self.workspace / SUMMARY_FILENAME

    @property
    def manifest_path(self) -> Path:
        return self.workspace / MANIFEST_FILENAME

    def account_dir(self, account: Account) -> Path:
        return self.workspace / account.name


def resolve_accounts(config: BackupConfig) -> Tuple[Account, ...]:
    accounts = []
    if config.clone_orgs:
        accounts.extend(Account(name=org, kind=AccountKind.ORG) for org in config.orgs)
    if config.clone_personal and config.username:
        accounts.append(Account(name=config.username, kind=AccountKind.USER))
    return tuple(accounts)


@dataclass
class FilesystemStorage:
    """Stores dated workspaces and their archives under ``base_path``."""

    base_path: Path

    def prepare_run(self, config: BackupConfig, started_at: datetime) -> BackupRun:
        self.base_path.mkdir(parents=True, exist_ok=True)
        date = started_at.strftime(DATE_FORMAT)
        workspace = self.base_path / date
        workspace.mkdir(parents=True, exist_ok=True)
        return BackupRun(
            date=date,
            base_path=self.base_path,
            workspace=workspace,
            accounts=resolve_accounts(config),
            clone_orgs=config.clone_orgs,
            clone_personal=config.clone_personal,
            username=config.username,
        )
