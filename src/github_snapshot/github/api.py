from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import requests

from github_snapshot.config import ConfigurationError, DEFAULT_API_URL

DEFAULT_ACCEPT_HEADER = "application/vnd.github+json"
USER_AGENT = "github-snapshot"
DEBUG_PREVIEW_CHARS = 200

FINE_GRAINED_FRAGMENT = "forbids access via a fine-grained personal access token"

LOG = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """Base class for errors reported by the GitHub API. Fatal unless stated otherwise."""

    default_hint = ""

    def __init__(self, message: str, status: Optional[int] = None, hint: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.hint = self.default_hint if hint is None else hint


class AuthenticationError(GitHubAPIError):
    default_hint = "Invalid GitHub token. Please check your GITHUB_TOKEN."


class RateLimitError(GitHubAPIError):
    default_hint = "GitHub API rate limit exceeded. Please wait and try again."


class PermissionDeniedError(GitHubAPIError):
    default_hint = (
        "Access forbidden (403). This could be due to:\n"
        "1. Token doesn't have sufficient permissions\n"
        "2. Token is too old for this organization\n"
        "3. Organization has restricted access policies"
    )


class NotFoundError(GitHubAPIError):
    """The organization or user does not exist or is not visible to the token."""

    default_hint = "Check the organization or user name and that the token can see it."


TOKEN_LIFETIME_HINT = (
    "GitHub token is too old (greater than 366 days).\n"
    "The organization requires a token with a lifetime of 366 days or less.\n"
    "Please create a new token at: https://github.com/settings/personal-access-tokens\n"
    "Set the expiration to 366 days or less."
)


class GitHubAPI:
    def __init__(
        self,
        token: Optional[str],
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30,
        debug: bool = False,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not token:
            raise ConfigurationError("GitHub token must be provided via environment variable")
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"token {token}",
                "Accept": DEFAULT_ACCEPT_HEADER,
                "User-Agent": USER_AGENT,
            }
        )
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._debug = debug

    def fetch_page(self, path: str, params: Optional[Dict[str, Any]] = None) -> Tuple[Any, int]:
        """GET one resource and return ``(decoded_body, http_status)``.

        Raises a :class:`GitHubAPIError` subclass when the status code or the
        ``message``/``status`` fields of the body describe an error.
        """
        url = f"{self._base_url}/{path.lstrip('/')}"
        if self._debug:
            LOG.debug("API URL: %s params=%s", url, params)
        try:
            response = self._session.get(url, params=params, timeout=self._timeout)
        except requests.RequestException as exc:
            raise GitHubAPIError(f"Request to {url} failed: {exc}") from exc

        if self._debug:
            LOG.debug("Response %s: %s...", response.status_code, response.text[:DEBUG_PREVIEW_CHARS])

        try:
            body = response.json()
        except ValueError:
            body = None

        _raise_for_error(url, response, body)
        if body is None:
            raise GitHubAPIError(f"GitHub API returned a non-JSON body for {url}", status=response.status_code)
        return body, response.status_code


def _raise_for_error(url: str, response: requests.Response, body: Any) -> None:
    message = ""
    body_status: Optional[int] = None
    if isinstance(body, dict):
        message = str(body.get("message") or "")
        raw_status = body.get("status")
        if raw_status is not None and str(raw_status).isdigit():
            body_status = int(raw_status)

    status = response.status_code
    if status < 400 and not message and body_status is None:
        return

    effective = status if status >= 400 else (body_status or status)
    detail = f"{message or 'HTTP ' + str(effective)} ({url})"

    if message == "Bad credentials" or effective == 401:
        raise AuthenticationError(detail, status=effective)
    if _is_rate_limited(message, effective, response):
        raise RateLimitError(detail, status=effective, hint=_rate_limit_hint(response))
    if FINE_GRAINED_FRAGMENT in message.lower():
        raise PermissionDeniedError(detail, status=effective, hint=TOKEN_LIFETIME_HINT)
    if message == "Not Found" or effective == 404:
        raise NotFoundError(detail, status=effective)
    if effective == 403:
        raise PermissionDeniedError(detail, status=effective)
    raise GitHubAPIError(detail, status=effective)


def _is_rate_limited(message: str, status: int, response: requests.Response) -> bool:
    if message.startswith("API rate limit exceeded") or "secondary rate limit" in message:
        return True
    return status in (403, 429) and response.headers.get("X-RateLimit-Remaining") == "0"


def _rate_limit_hint(response: requests.Response) -> str:
    hint = RateLimitError.default_hint
    reset = response.headers.get("X-RateLimit-Reset")
    if reset and reset.isdigit():
        hint += f" The limit resets at {datetime.fromtimestamp(int(reset)).isoformat(timespec='seconds')}."
    return hint
