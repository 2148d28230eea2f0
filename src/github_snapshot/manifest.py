from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Sequence

from .github.clone import CloneResult


@dataclass
class RepositoryManifest:
    account: str
    name: str
    path: str
    archived: bool
    status: str
    error: str = ""

    @classmethod
    def from_result(cls, result: CloneResult, workspace: Path) -> "RepositoryManifest":
        try:
            path = result.path.relative_to(workspace).as_posix()
        except ValueError:
            path = str(result.path)
        return cls(
            account=result.account,
            name=result.name,
            path=path,
            archived=result.archived,
            status=result.status.value,
            error=result.error,
        )


@dataclass
class Manifest:
    date: str
    started_at: datetime
    completed_at: datetime
    accounts: List[str]
    repositories: List[RepositoryManifest]
    failed_accounts: List[str] = field(default_factory=list)
    schema_version: str = "1.0.0"

    @classmethod
    def build(
        cls,
        date: str,
        started_at: datetime,
        completed_at: datetime,
        accounts: Sequence[str],
        results: Sequence[CloneResult],
        workspace: Path,
        failed_accounts: Sequence[str] = (),
    ) -> "Manifest":
        return cls(
            date=date,
            started_at=started_at,
            completed_at=completed_at,
            accounts=list(accounts),
            repositories=[RepositoryManifest.from_result(r, workspace) for r in results],
            failed_accounts=list(failed_accounts),
        )

    def to_dict(self) -> Dict:
        return {
            "schema_version": self.schema_version,
            "date": self.date,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "accounts": self.accounts,
            "failed_accounts": self.failed_accounts,
            "repositories": [dataclasses.asdict(repo) for repo in self.repositories],
        }

    def write(self, path: Path) -> None:
        with path.open("w", encoding="utf-8") as fh:
            json.dump(self.to_dict(), fh, indent=2)
