from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence

from .archive import ArchiveResult, Runner, Which, create_archive
from .config import BackupConfig
from .github import (
    Account,
    CloneResult,
    GitHubAPI,
    GitHubAPIError,
    NotFoundError,
    clone_account,
    enforce_retention,
)
from .manifest import Manifest
from .storage import BackupRun, FilesystemStorage
from .summary import write_summary

LOG = logging.getLogger(__name__)

ApiFactory = Callable[[BackupConfig, str], GitHubAPI]


class RunState(str, Enum):
    INIT = "init"
    CLONING_ORGS = "cloning_orgs"
    CLONING_PERSONAL = "cloning_personal"
    SUMMARIZING = "summarizing"
    ARCHIVING = "archiving"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunResult:
    run: BackupRun
    started_at: datetime
    state: RunState = RunState.INIT
    completed_at: Optional[datetime] = None
    clone_results: List[CloneResult] = field(default_factory=list)
    failed_accounts: List[str] = field(default_factory=list)
    archive: Optional[ArchiveResult] = None
    error: Optional[GitHubAPIError] = None

    @property
    def success(self) -> bool:
        return self.state is RunState.DONE and not self.failed_accounts

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1


def create_api(config: BackupConfig, token: str) -> GitHubAPI:
    return GitHubAPI(token, base_url=config.api_url, timeout=config.http_timeout, debug=config.debug)


class BackupOrchestrator:
    """Runs one backup: clone organizations, clone the personal account, summarize, archive."""

    def __init__(
        self,
        config: BackupConfig,
        *,
        api_factory: ApiFactory = create_api,
        storage: Optional[FilesystemStorage] = None,
        clock: Callable[[], datetime] = datetime.now,
        git_runner: Runner = subprocess.run,
        archive_runner: Runner = subprocess.run,
        which: Which = shutil.which,
    ) -> None:
        self._config = config
        self._api_factory = api_factory
        self._storage = storage or FilesystemStorage(base_path=config.output_dir)
        self._clock = clock
        self._git_runner = git_runner
        self._archive_runner = archive_runner
        self._which = which

    def run(self) -> RunResult:
        token = self._config.require_token()
        started_at = self._clock()
        run = self._storage.prepare_run(self._config, started_at)
        result = RunResult(run=run, started_at=started_at)
        LOG.info("Starting GitHub repository backup for %s in %s", run.date, run.workspace)

        api = self._api_factory(self._config, token)
        try:
            self._transition(result, RunState.CLONING_ORGS)
            if run.org_accounts:
                self._clone_accounts(api, token, run.org_accounts, result)
            else:
                LOG.info("Organization cloning disabled or no organizations specified")

            self._transition(result, RunState.CLONING_PERSONAL)
            if run.personal_accounts:
                self._clone_accounts(api, token, run.personal_accounts, result)
            else:
                LOG.info("Personal repository cloning disabled or no username specified")
        except GitHubAPIError as exc:
            self._transition(result, RunState.FAILED)
            result.error = exc
            result.completed_at = self._clock()
            LOG.error("Backup aborted: %s", exc)
            if exc.hint:
                LOG.error("%s", exc.hint)
            return result

        self._transition(result, RunState.SUMMARIZING)
        write_summary(run, result.clone_results, result.failed_accounts, generated_at=self._clock())
        Manifest.build(
            date=run.date,
            started_at=started_at,
            completed_at=self._clock(),
            accounts=[a.name for a in run.accounts],
            results=result.clone_results,
            workspace=run.workspace,
            failed_accounts=result.failed_accounts,
        ).write(run.manifest_path)

        self._transition(result, RunState.ARCHIVING)
        result.archive = create_archive(run, which=self._which, runner=self._archive_runner)
        enforce_retention(run.base_path, self._config.retention_days, now=started_at)

        self._transition(result, RunState.DONE)
        result.completed_at = self._clock()
        if result.failed_accounts:
            LOG.warning("Backup completed, but these accounts failed: %s", ", ".join(result.failed_accounts))
        else:
            LOG.info("Backup completed successfully")
        return result

    def _clone_accounts(
        self,
        api: GitHubAPI,
        token: str,
        accounts: Sequence[Account],
        result: RunResult,
    ) -> None:
        for account in accounts:
            try:
                result.clone_results.extend(
                    clone_account(
                        api,
                        account,
                        result.run.workspace,
                        token,
                        timeout=self._config.clone_timeout,
                        runner=self._git_runner,
                    )
                )
            except NotFoundError as exc:
                LOG.error("%s '%s' not found or not accessible: %s", account.label.capitalize(), account.name, exc)
                result.failed_accounts.append(account.name)

    @staticmethod
    def _transition(result: RunResult, state: RunState) -> None:
        LOG.debug("Run state %s -> %s", result.state.value, state.value)
        result.state = state
