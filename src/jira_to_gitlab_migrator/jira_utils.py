"""Jira access: client construction and conversion of Jira issues to SourceIssue."""

from __future__ import annotations

import datetime as dt
import logging
import os
from typing import TYPE_CHECKING, Any, Final

import requests
from jira import JIRA
from jira.exceptions import JIRAError

from . import utils
from .exceptions import TransportError
from .models import Attachment, Comment, Person, SourceIssue

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "JIRA_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "jira/cli/token"  # noqa: S105
_JIRA_TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%dT%H:%M:%S.%f%z"

_REMOTE_ERRORS = (JIRAError, requests.RequestException)


def get_token(pass_path: str | None = None) -> str | None:
    """Get Jira token from pass path, env var JIRA_TOKEN, or default pass location."""
    if pass_path:
        return utils.get_pass_value(pass_path)

    token: str | None = os.environ.get(_TOKEN_ENV_VAR)
    if token:
        return token

    try:
        return utils.get_pass_value(_DEFAULT_TOKEN_PASS_PATH)
    except (ValueError, utils.PassError):
        logger.warning("No Jira token specified nor found")
        return None


def get_client(url: str, token: str | None = None) -> JIRA:
    """Get a Jira client authenticating with a personal access token (bearer auth)."""
    try:
        if token:
            return JIRA(server=url, token_auth=token)
        return JIRA(server=url)
    except _REMOTE_ERRORS as e:
        msg = f"Failed to connect to Jira at {url}: {e}"
        raise TransportError(msg, operation="connect to Jira") from e


def parse_timestamp(value: str | None) -> dt.datetime | None:
    """Parse a Jira timestamp such as "2024-01-15T10:30:45.000+0900"."""
    if not value:
        return None
    try:
        return dt.datetime.strptime(value, _JIRA_TIMESTAMP_FORMAT)
    except ValueError:
        pass
    try:
        return dt.datetime.fromisoformat(value)
    except ValueError:
        logger.warning(f"Unparseable Jira timestamp: {value}")
        return None


def parse_date(value: str | None) -> dt.date | None:
    """Parse a Jira date field ("YYYY-MM-DD")."""
    if not value:
        return None
    try:
        return dt.date.fromisoformat(value)
    except ValueError:
        logger.warning(f"Unparseable Jira date: {value}")
        return None


def person_from_raw(raw: dict[str, Any] | None) -> Person | None:
    """Build a Person from a Jira user object (Server or Cloud)."""
    if not raw:
        return None
    return Person(
        name=raw.get("name") or raw.get("accountId") or raw.get("key") or "",
        display_name=raw.get("displayName", ""),
        email=raw.get("emailAddress", ""),
    )


def issue_from_raw(raw: dict[str, Any], jira_url: str = "") -> SourceIssue:
    """Build a SourceIssue from the JSON representation of a Jira issue."""
    fields: dict[str, Any] = raw.get("fields", {})
    key: str = raw["key"]

    attachments = tuple(
        Attachment(
            id=str(item["id"]),
            filename=item.get("filename", ""),
            content_url=item.get("content", ""),
            author=person_from_raw(item.get("author")),
            created_at=parse_timestamp(item.get("created")),
            size=item.get("size", 0),
        )
        for item in fields.get("attachment") or []
    )
    comments = tuple(
        Comment(
            id=str(item["id"]),
            body=item.get("body") or "",
            author=person_from_raw(item.get("author")),
            created_at=parse_timestamp(item.get("created")),
        )
        for item in (fields.get("comment") or {}).get("comments", [])
    )
    resolution: dict[str, Any] | None = fields.get("resolution")

    return SourceIssue(
        key=key,
        summary=fields.get("summary", ""),
        description=fields.get("description") or "",
        created_at=parse_timestamp(fields.get("created")),
        due_date=parse_date(fields.get("duedate")),
        resolution=resolution.get("name", "Resolved") if resolution else None,
        custom_fields={name: value for name, value in fields.items() if name.startswith("customfield_")},
        attachments=attachments,
        comments=comments,
        labels=tuple(fields.get("labels") or ()),
        issue_type=(fields.get("issuetype") or {}).get("name", ""),
        reporter=person_from_raw(fields.get("reporter")),
        web_url=f"{jira_url.rstrip('/')}/browse/{key}" if jira_url else "",
    )


class JiraSource:
    """Reads issues and attachment contents through the ``jira`` library."""

    _client: JIRA
    _url: str

    def __init__(self, client: JIRA, url: str) -> None:
        self._client = client
        self._url = url

    def search_issues(self, jql: str) -> Iterator[SourceIssue]:
        try:
            issues = self._client.search_issues(jql, maxResults=False, fields="*all")
        except _REMOTE_ERRORS as e:
            msg = f"Jira search failed for '{jql}': {e}"
            raise TransportError(msg, operation="search issues") from e

        logger.info(f"Found {len(issues)} Jira issues for '{jql}'")
        for issue in issues:
            yield issue_from_raw(issue.raw, self._url)

    def download_attachment(self, attachment: Attachment) -> bytes:
        try:
            content = self._client.attachment(attachment.id).get()
        except _REMOTE_ERRORS as e:
            msg = f"Failed to download Jira attachment {attachment.filename}: {e}"
            raise TransportError(msg, operation=f"download attachment {attachment.filename}") from e
        logger.debug(f"Downloaded {attachment.filename}: {len(content)} bytes")
        return content

    def get_users(self, issues: Iterable[SourceIssue]) -> list[Person]:
        users: dict[str, Person] = {}
        for issue in issues:
            people = [issue.reporter]
            people += [comment.author for comment in issue.comments]
            people += [attachment.author for attachment in issue.attachments]
            for person in people:
                if person is not None and person.name and person.name not in users:
                    users[person.name] = person
        return list(users.values())
