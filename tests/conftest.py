"""
Pytest configuration and fixtures.

This module configures pytest behavior for different test types:
- Integration tests: Fail on any warnings from the code under test
- Unit tests: Allow warnings, and get in-memory Jira and GitLab fakes
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import TYPE_CHECKING, Any

import pytest
from typing_extensions import override

from jira_to_gitlab_migrator.config import MigrationConfig
from jira_to_gitlab_migrator.exceptions import TransportError
from jira_to_gitlab_migrator.models import Note, Person, TargetEntity, UploadedFile

if TYPE_CHECKING:
    import datetime as dt
    from collections.abc import Generator, Iterable, Iterator

    from jira_to_gitlab_migrator.models import Attachment, EntityKind, SourceIssue

# Store warning records during test execution
_integration_test_warnings: dict[str, list[logging.LogRecord]] = {}


class FakeJira:
    """In-memory SourceSystem."""

    def __init__(self, issues: Iterable[SourceIssue] = ()) -> None:
        self.issues: list[SourceIssue] = list(issues)
        self.failing_downloads: set[str] = set()
        self.downloads: list[str] = []
        self._lock = threading.Lock()

    def search_issues(self, jql: str) -> Iterator[SourceIssue]:
        yield from self.issues

    def download_attachment(self, attachment: Attachment) -> bytes:
        with self._lock:
            self.downloads.append(attachment.id)
        if attachment.filename in self.failing_downloads:
            msg = f"Download of {attachment.filename} failed"
            raise TransportError(msg)
        return f"content of {attachment.filename}".encode()

    def get_users(self, issues: Iterable[SourceIssue]) -> list[Person]:
        users: dict[str, Person] = {}
        for issue in issues:
            for comment in issue.comments:
                if comment.author is not None:
                    users.setdefault(comment.author.name, comment.author)
        return list(users.values())


class FakeGitLab:
    """In-memory TargetSystem recording every call.

    ``uploads`` maps a filename to the markdown returned by its upload; by
    default uploads return "![<stem>](/uploads/<n>/<filename>)".
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self.entities: list[tuple[EntityKind, dict[str, Any], TargetEntity]] = []
        self.notes: list[tuple[int, str, dt.datetime | None]] = []
        self.state_events: list[tuple[int, str]] = []
        self.uploads: dict[str, str] = {}
        self.uploaded: list[str] = []
        self.labels: dict[str, list[str]] = {"epic": [], "issue": []}
        self.users: dict[str, str] = {}
        self.fail_notes_containing: str | None = None
        self.fail_state_update = False
        self.fail_create = False

    def create_entity(self, kind: EntityKind, payload: dict[str, Any]) -> TargetEntity:
        if self.fail_create:
            msg = "Entity creation failed"
            raise TransportError(msg)
        with self._lock:
            entity_id = next(self._ids)
            entity = TargetEntity(
                id=1000 + entity_id,
                iid=entity_id,
                kind=kind,
                title=payload["title"],
                web_url=f"https://gitlab.example.com/{kind}s/{entity_id}",
            )
            self.entities.append((kind, payload, entity))
        return entity

    def create_note(
        self,
        kind: EntityKind,
        entity: TargetEntity,
        body: str,
        created_at: dt.datetime | None = None,
    ) -> Note:
        if self.fail_notes_containing is not None and self.fail_notes_containing in body:
            msg = "Note creation failed"
            raise TransportError(msg)
        with self._lock:
            self.notes.append((entity.id, body, created_at))
            return Note(id=len(self.notes), body=body)

    def update_entity_state(self, kind: EntityKind, entity: TargetEntity, state_event: str) -> None:
        if self.fail_state_update:
            msg = "State update failed"
            raise TransportError(msg)
        with self._lock:
            self.state_events.append((entity.id, state_event))

    def upload_attachment(self, filename: str, content: bytes) -> UploadedFile:
        with self._lock:
            self.uploaded.append(filename)
            number = len(self.uploaded)
        stem = filename.rsplit(".", 1)[0]
        markdown = self.uploads.get(filename, f"![{stem}](/uploads/{number}/{filename})")
        return UploadedFile(markdown=markdown, name=stem)

    def list_labels(self, kind: EntityKind) -> list[str]:
        return list(self.labels[kind])

    def create_label(self, kind: EntityKind, name: str, color: str, description: str = "") -> str:
        self.labels[kind].append(name)
        return name

    def get_user_identity(self, email: str) -> str | None:
        return self.users.get(email)


@pytest.fixture
def config() -> MigrationConfig:
    return MigrationConfig(
        gitlab_url="https://gitlab.example.com",
        jira_url="https://jira.example.com",
        epic_group="group",
        issue_project="group/issues",
        epic_start_date_field="customfield_10015",
    )


@pytest.fixture
def fake_jira() -> FakeJira:
    return FakeJira()


@pytest.fixture
def fake_gitlab() -> FakeGitLab:
    return FakeGitLab()


class IntegrationTestWarningHandler(logging.Handler):
    """Custom logging handler to capture warnings during integration tests."""

    test_nodeid: str

    def __init__(self, test_nodeid: str) -> None:
        super().__init__()
        self.test_nodeid = test_nodeid
        self.setLevel(logging.WARNING)

    @override
    def emit(self, record: logging.LogRecord) -> None:
        """Capture WARNING and above level logs."""
        _integration_test_warnings.setdefault(self.test_nodeid, []).append(record)


@pytest.fixture(autouse=True)
def fail_on_log_warnings_for_integration_tests(
    request: pytest.FixtureRequest,
) -> Generator[None]:
    """
    Automatically fail integration tests if any WARNING level logs are emitted from the code under test.

    A warning during a real migration means a skipped start date, an unparseable
    timestamp or a failed close; acceptable for users, a failure in tests.
    """
    if request.node.get_closest_marker("integration") is None:
        yield
        return

    test_nodeid = request.node.nodeid
    _integration_test_warnings[test_nodeid] = []

    handler = IntegrationTestWarningHandler(test_nodeid)
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)

    try:
        yield
    finally:
        root_logger.removeHandler(handler)


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[None]
) -> Generator[None]:  # type: ignore[misc]
    """Mark passed integration tests as failed if warnings were logged during the call."""
    outcome = yield
    report = outcome.get_result()

    if call.when == "call" and report.outcome == "passed":
        test_nodeid = item.nodeid
        warning_records = _integration_test_warnings.get(test_nodeid, [])

        if warning_records:
            warning_messages = [
                f"{record.levelname}: {record.getMessage()} (in {record.name}:{record.lineno})"
                for record in warning_records
            ]
            report.outcome = "failed"
            report.longrepr = f"Integration test failed: {len(warning_records)} warning(s) detected:\n" + "\n".join(
                f"  - {msg}" for msg in warning_messages
            )

        _integration_test_warnings.pop(test_nodeid, None)
