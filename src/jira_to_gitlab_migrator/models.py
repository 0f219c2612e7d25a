"""Data models exchanged between the Jira source, the converters and the GitLab target.

Source models are immutable snapshots of Jira data. They are built once by
the source adapter and never mutated during a conversion.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal

EntityKind = Literal["epic", "issue"]

# Jira user name, account id or email -> GitLab username
UserMap = dict[str, str]


@dataclass(frozen=True)
class Person:
    """A Jira user as referenced by issues, comments and attachments."""

    name: str  # user name on Jira Server, account id on Jira Cloud
    display_name: str = ""
    email: str = ""


@dataclass(frozen=True)
class Attachment:
    """An attachment on a Jira issue. The bytes are fetched through the source."""

    id: str
    filename: str
    content_url: str
    author: Person | None = None
    created_at: datetime | None = None
    size: int = 0


@dataclass(frozen=True)
class Comment:
    """A comment on a Jira issue."""

    id: str
    body: str
    author: Person | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class SourceIssue:
    """A Jira issue or epic to be migrated.

    ``resolution`` being set means the issue is resolved and the migrated
    entity gets closed.
    """

    key: str
    summary: str
    description: str = ""
    created_at: datetime | None = None
    due_date: date | None = None
    resolution: str | None = None
    custom_fields: dict[str, Any] = field(default_factory=dict)
    attachments: tuple[Attachment, ...] = ()
    comments: tuple[Comment, ...] = ()
    labels: tuple[str, ...] = ()
    issue_type: str = ""
    reporter: Person | None = None
    web_url: str = ""

    @property
    def is_epic(self) -> bool:
        return self.issue_type.lower() == "epic"


@dataclass(frozen=True)
class UploadedFile:
    """Result of uploading a file to the staging project."""

    markdown: str  # e.g. "![screenshot](/uploads/<secret>/screenshot.png)"
    name: str


@dataclass(frozen=True)
class RelocatedAttachment:
    """An attachment uploaded to the staging project, embeddable anywhere on the host."""

    markdown: str  # "![alt](absolute url)"
    name: str
    created_at: datetime | None = None


@dataclass(frozen=True)
class TargetEntity:
    """A GitLab epic or issue created by a conversion."""

    id: int
    iid: int
    kind: EntityKind
    title: str
    web_url: str = ""
    state: str = "opened"
    labels: tuple[str, ...] = ()


@dataclass(frozen=True)
class Note:
    """A note (comment) created on a GitLab epic or issue."""

    id: int
    body: str


@dataclass(frozen=True)
class FormattedText:
    """GitLab markdown produced from Jira markup.

    ``embedded`` holds the ids of the relocated attachments that were
    substituted inline.
    """

    body: str
    embedded: frozenset[str] = frozenset()


class UsedAttachmentSet:
    """Thread-safe set of attachment ids already embedded inline."""

    def __init__(self) -> None:
        self._ids: set[str] = set()
        self._lock = threading.Lock()

    def mark(self, attachment_ids: frozenset[str] | set[str]) -> None:
        with self._lock:
            self._ids.update(attachment_ids)

    def __contains__(self, attachment_id: object) -> bool:
        with self._lock:
            return attachment_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)
