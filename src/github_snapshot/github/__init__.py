from .api import (
    AuthenticationError,
    GitHubAPI,
    GitHubAPIError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
)
from .clone import (
    CloneResult,
    CloneStatus,
    authenticated_url,
    clone_account,
    clone_repository,
    existing_clone,
    target_path,
)
from .repositories import Account, AccountKind, Page, RepositoryRecord, iter_repositories
from .retention import enforce_retention

__all__ = [
    "GitHubAPI",
    "GitHubAPIError",
    "AuthenticationError",
    "RateLimitError",
    "PermissionDeniedError",
    "NotFoundError",
    "Account",
    "AccountKind",
    "Page",
    "RepositoryRecord",
    "iter_repositories",
    "CloneResult",
    "CloneStatus",
    "authenticated_url",
    "clone_account",
    "clone_repository",
    "existing_clone",
    "target_path",
    "enforce_retention",
]
