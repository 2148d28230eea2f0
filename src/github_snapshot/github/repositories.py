from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List

from .api import GitHubAPI, GitHubAPIError

PAGE_SIZE = 100

LOG = logging.getLogger(__name__)


class AccountKind(str, Enum):
    ORG = "org"
    USER = "user"


@dataclass(frozen=True)
class Account:
    name: str
    kind: AccountKind

    @property
    def repos_path(self) -> str:
        if self.kind is AccountKind.ORG:
            return f"orgs/{self.name}/repos"
        return f"users/{self.name}/repos"

    @property
    def query(self) -> Dict[str, Any]:
        if self.kind is AccountKind.ORG:
            return {"type": "all"}
        return {"type": "owner", "visibility": "all"}

    @property
    def label(self) -> str:
        return "organization" if self.kind is AccountKind.ORG else "user"


@dataclass(frozen=True)
class RepositoryRecord:
    name: str
    clone_url: str
    archived: bool = False


@dataclass
class Page:
    number: int
    records: List[RepositoryRecord] = field(default_factory=list)
    has_more: bool = False


def parse_page(body: Any, number: int, page_size: int = PAGE_SIZE) -> Page:
    """Turn one decoded ``/repos`` response into a :class:`Page`.

    Only a completely full page signals that another request is needed.
    """
    if not isinstance(body, list):
        raise GitHubAPIError(f"Expected a JSON array of repositories on page {number}, got {type(body).__name__}")

    records: List[RepositoryRecord] = []
    for item in body:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        url = item.get("clone_url") or item.get("ssh_url")
        if not name or not url:
            LOG.debug("Skipping repository entry without name or URL: %r", item.get("full_name"))
            continue
        records.append(RepositoryRecord(name=name, clone_url=url, archived=item.get("archived") is True))

    return Page(number=number, records=records, has_more=len(body) >= page_size)


def fetch_repository_page(api: GitHubAPI, account: Account, number: int, page_size: int = PAGE_SIZE) -> Page:
    params = dict(account.query, per_page=page_size, page=number)
    body, _status = api.fetch_page(account.repos_path, params)
    return parse_page(body, number, page_size)


def iter_repositories(api: GitHubAPI, account: Account, page_size: int = PAGE_SIZE) -> Iterator[RepositoryRecord]:
    number = 1
    while True:
        LOG.info("Fetching page %d for %s %s", number, account.label, account.name)
        page = fetch_repository_page(api, account, number, page_size)
        if not page.records and not page.has_more:
            LOG.info("No more repositories found for %s on page %d", account.name, number)
            return

        LOG.info("Found %d repositories on page %d", len(page.records), number)
        yield from page.records

        if not page.has_more:
            LOG.info("Reached last page for %s", account.name)
            return
        number += 1
