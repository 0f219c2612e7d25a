"""Protocols defining the contracts for the Jira source and the GitLab target.

The migration architecture separates concerns into three components:

1. SourceSystem: Reads issues, comments and attachment bytes from Jira
2. TargetSystem: Creates epics, issues, notes, labels and uploads in GitLab
3. Converters: Turn one SourceIssue into one TargetEntity using both

This separation allows:
- Testing the converters with mock implementations of both sides
- Keeping library-specific error types at the adapter boundary: every
  implementation raises TransportError for failed remote calls
- Passing explicit client handles instead of process-wide singletons
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from datetime import datetime

    from .models import Attachment, EntityKind, Note, Person, SourceIssue, TargetEntity, UploadedFile


class SourceSystem(Protocol):
    """Protocol for reading data from Jira.

    Implementations return normalized models (see models.py) so the
    converters never touch the Jira client directly.
    """

    def search_issues(self, jql: str) -> Iterator[SourceIssue]:
        """Yield every issue matching the JQL query, with comments and attachments."""
        ...

    def download_attachment(self, attachment: Attachment) -> bytes:
        """Return the content of an attachment.

        Raises:
            TransportError: If the download fails
        """
        ...

    def get_users(self, issues: Iterable[SourceIssue]) -> list[Person]:
        """Return the distinct users referenced by the given issues."""
        ...


class TargetSystem(Protocol):
    """Protocol for creating data in GitLab.

    ``kind`` selects the scope of each call: epics live in the configured
    group, issues in the configured project. Attachments always go to the
    staging project because epics have no upload endpoint.

    All methods raise TransportError when the remote call fails.
    """

    def create_entity(self, kind: EntityKind, payload: dict[str, Any]) -> TargetEntity:
        """Create an epic or issue from a REST payload."""
        ...

    def create_note(
        self,
        kind: EntityKind,
        entity: TargetEntity,
        body: str,
        created_at: datetime | None = None,
    ) -> Note:
        """Add a note to an epic or issue.

        ``created_at`` is only honoured for issues; epic notes always get the
        current time.
        """
        ...

    def update_entity_state(self, kind: EntityKind, entity: TargetEntity, state_event: str) -> None:
        """Apply a state event (``"close"`` or ``"reopen"``) to an epic or issue."""
        ...

    def upload_attachment(self, filename: str, content: bytes) -> UploadedFile:
        """Upload a file to the staging project and return its markdown fragment."""
        ...

    def list_labels(self, kind: EntityKind) -> list[str]:
        """Return the label names available in the scope of ``kind``."""
        ...

    def create_label(self, kind: EntityKind, name: str, color: str, description: str = "") -> str:
        """Create a label in the scope of ``kind`` and return its name."""
        ...

    def get_user_identity(self, email: str) -> str | None:
        """Return the GitLab username for an email address, if a user has it."""
        ...
