"""Conversion of one Jira issue into one GitLab epic or issue.

A conversion runs through these states, each phase finishing completely
before the next one starts:

    INITIALIZING
        │  relocate all attachments to the staging project (parallel)
        ▼
    ATTACHMENTS_RELOCATED
        │  build payload (labels, description, dates), create the entity
        ▼
    ENTITY_CREATED
        │  format and post every comment as a note (parallel)
        ▼
    COMMENTS_POSTED
        │  post attachments not embedded inline as standalone notes (parallel)
        ▼
    ORPHANS_POSTED
        │  close the entity if the Jira issue is resolved (best effort)
        ▼
    STATE_APPLIED ──► DONE

Any failure moves the conversion to FAILED and raises. Failures after the
entity was created raise PartialMigrationError: remote writes are never
rolled back. Closing the entity is best effort, its failure is attached to
the result as StateUpdateError.

Conversions are not idempotent. Converting the same Jira issue twice creates
two GitLab entities, with their own uploads and notes.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from .attachments import AttachmentRelocator
from .exceptions import ConfigError, MigrationError, PartialMigrationError, StateUpdateError, TransportError
from .formatter import format_description, format_note
from .labels import LabelMapper, LabelTranslator
from .models import UsedAttachmentSet
from .task_group import BoundedTaskGroup
from .utils import random_color

if TYPE_CHECKING:
    from .config import MigrationConfig
    from .models import Comment, EntityKind, RelocatedAttachment, SourceIssue, TargetEntity, UserMap
    from .protocols import SourceSystem, TargetSystem

logger: logging.Logger = logging.getLogger(__name__)

START_DATE_FORMAT = "%Y-%m-%d"


class ConversionState(enum.Enum):
    INITIALIZING = "initializing"
    ATTACHMENTS_RELOCATED = "attachments_relocated"
    ENTITY_CREATED = "entity_created"
    COMMENTS_POSTED = "comments_posted"
    ORPHANS_POSTED = "orphans_posted"
    STATE_APPLIED = "state_applied"
    DONE = "done"
    FAILED = "failed"


_NEXT_STATE: dict[ConversionState, ConversionState] = {
    ConversionState.INITIALIZING: ConversionState.ATTACHMENTS_RELOCATED,
    ConversionState.ATTACHMENTS_RELOCATED: ConversionState.ENTITY_CREATED,
    ConversionState.ENTITY_CREATED: ConversionState.COMMENTS_POSTED,
    ConversionState.COMMENTS_POSTED: ConversionState.ORPHANS_POSTED,
    ConversionState.ORPHANS_POSTED: ConversionState.STATE_APPLIED,
    ConversionState.STATE_APPLIED: ConversionState.DONE,
}


@dataclass
class ConversionResult:
    """Outcome of a successful conversion."""

    entity: TargetEntity
    state: ConversionState
    attachments_relocated: int = 0
    notes_created: int = 0
    orphans_posted: int = 0
    state_error: StateUpdateError | None = None


@dataclass
class _Run:
    """Mutable state of one conversion."""

    issue: SourceIssue
    state: ConversionState = ConversionState.INITIALIZING
    entity: TargetEntity | None = None
    relocated: dict[str, RelocatedAttachment] = dataclasses.field(default_factory=dict)
    used: UsedAttachmentSet = dataclasses.field(default_factory=UsedAttachmentSet)

    def advance(self, expected: ConversionState) -> None:
        if _NEXT_STATE.get(self.state) is not expected:
            msg = f"Invalid conversion transition {self.state.name} -> {expected.name}"
            raise RuntimeError(msg)
        logger.debug(f"{self.issue.key}: {self.state.name} -> {expected.name}")
        self.state = expected

    def fail(self, error: MigrationError, operation: str) -> MigrationError:
        """Move to FAILED and return the error to raise, with issue key and operation."""
        logger.debug(f"{self.issue.key}: {self.state.name} -> FAILED")
        self.state = ConversionState.FAILED
        operation = error.operation or operation
        msg = f"{self.issue.key}: failed to {operation}: {error}"
        if self.entity is not None:
            return PartialMigrationError(msg, issue_key=self.issue.key, operation=operation, entity=self.entity)
        return type(error)(msg, issue_key=self.issue.key, operation=operation)


class EntityConverter:
    """Converts Jira issues into GitLab entities of one kind.

    Subclasses set ``kind`` and build the creation payload. Both remote
    systems are injected, so one converter can be shared by concurrent
    conversions.
    """

    kind: ClassVar[EntityKind]

    _source: SourceSystem
    _target: TargetSystem
    _config: MigrationConfig
    _labels: LabelMapper
    _relocator: AttachmentRelocator

    def __init__(
        self,
        source: SourceSystem,
        target: TargetSystem,
        config: MigrationConfig,
        *,
        label_mapper: LabelMapper | None = None,
    ) -> None:
        self._source = source
        self._target = target
        self._config = config
        self._labels = label_mapper or LabelMapper(target, LabelTranslator(config.label_translations))
        self._relocator = AttachmentRelocator(
            source,
            target,
            host=config.gitlab_url,
            staging_project=config.staging_project,
            limit=config.attachment_concurrency,
        )

    @property
    def is_epic(self) -> bool:
        return self.kind == "epic"

    def convert(self, issue: SourceIssue, user_map: UserMap) -> ConversionResult:
        """Migrate one Jira issue with its attachments, comments and resolution.

        Args:
            issue: Jira issue to migrate
            user_map: Jira user -> GitLab username mapping

        Returns:
            ConversionResult with the created entity

        Raises:
            MigrationError: If any step before closing fails. PartialMigrationError
                once the entity exists in GitLab.
        """
        run = _Run(issue=issue)
        logger.debug(f"Converting {issue.key} to GitLab {self.kind}")

        try:
            run.relocated = self._relocator.relocate(issue.attachments, context=issue.key)
        except MigrationError as e:
            raise run.fail(e, "relocate attachments") from e
        run.advance(ConversionState.ATTACHMENTS_RELOCATED)

        try:
            payload = self.build_payload(issue, user_map, run)
            run.entity = self._target.create_entity(self.kind, payload)
        except MigrationError as e:
            raise run.fail(e, f"create {self.kind}") from e
        run.advance(ConversionState.ENTITY_CREATED)
        entity = run.entity
        logger.debug(f"Created GitLab {self.kind} {entity.iid} from Jira issue {issue.key}")

        try:
            notes_created = self._post_comments(run, entity, user_map)
        except MigrationError as e:
            raise run.fail(e, "post comments") from e
        run.advance(ConversionState.COMMENTS_POSTED)

        try:
            orphans_posted = self._post_orphans(run, entity)
        except MigrationError as e:
            raise run.fail(e, "post attachments") from e
        run.advance(ConversionState.ORPHANS_POSTED)

        entity, state_error = self._apply_state(issue, entity)
        run.advance(ConversionState.STATE_APPLIED)
        run.advance(ConversionState.DONE)

        logger.info(f"Migrated {issue.key} to GitLab {self.kind} {entity.iid}")
        return ConversionResult(
            entity=entity,
            state=run.state,
            attachments_relocated=len(run.relocated),
            notes_created=notes_created,
            orphans_posted=orphans_posted,
            state_error=state_error,
        )

    def build_payload(self, issue: SourceIssue, user_map: UserMap, run: _Run) -> dict[str, Any]:
        """Build the REST payload shared by epics and issues.

        Attachment ids embedded in the description are marked used.
        """
        description = format_description(issue, user_map, run.relocated, is_epic=self.is_epic)
        run.used.mark(description.embedded)

        payload: dict[str, Any] = {
            "title": issue.summary,
            "description": description.body,
            "labels": ",".join(self._labels.map_labels(issue.labels, self.kind)),
        }
        if issue.created_at is not None:
            payload["created_at"] = issue.created_at.isoformat()
        return payload

    def _post_comments(self, run: _Run, entity: TargetEntity, user_map: UserMap) -> int:
        issue = run.issue

        def post(comment: Comment) -> None:
            note = format_note(issue.key, comment, user_map, run.relocated, is_epic=self.is_epic)
            run.used.mark(note.embedded)
            try:
                self._target.create_note(self.kind, entity, note.body, created_at=comment.created_at)
            except TransportError as e:
                e.operation = f"post comment {comment.id}"
                raise

        group = BoundedTaskGroup(self._config.comment_concurrency, name="comment-posting")
        group.run(lambda c=comment: post(c) for comment in issue.comments)
        return len(issue.comments)

    def _post_orphans(self, run: _Run, entity: TargetEntity) -> int:
        """Post every relocated attachment that no description or comment embedded."""
        orphans = [
            (attachment.id, run.relocated[attachment.id])
            for attachment in run.issue.attachments
            if attachment.id in run.relocated and attachment.id not in run.used
        ]

        def post(attachment_id: str, relocated: RelocatedAttachment) -> None:
            try:
                self._target.create_note(self.kind, entity, relocated.markdown, created_at=relocated.created_at)
            except TransportError as e:
                e.operation = f"post attachment {attachment_id}"
                raise

        group = BoundedTaskGroup(self._config.orphan_concurrency, name="attachment-posting")
        group.run(lambda a=attachment_id, r=relocated: post(a, r) for attachment_id, relocated in orphans)
        if orphans:
            logger.debug(f"Posted {len(orphans)} attachments of {run.issue.key} as notes")
        return len(orphans)

    def _apply_state(self, issue: SourceIssue, entity: TargetEntity) -> tuple[TargetEntity, StateUpdateError | None]:
        if issue.resolution is None:
            return entity, None

        try:
            self._target.update_entity_state(self.kind, entity, "close")
        except TransportError as e:
            msg = f"{issue.key}: failed to close GitLab {self.kind} {entity.iid}: {e}"
            logger.warning(msg)
            return entity, StateUpdateError(msg, issue_key=issue.key, operation=f"close {self.kind}")

        logger.debug(f"Closed GitLab {self.kind} {entity.iid} (Jira resolution: {issue.resolution})")
        return dataclasses.replace(entity, state="closed"), None


class EpicConverter(EntityConverter):
    """Converts Jira issues (usually of type Epic) into GitLab group epics."""

    kind = "epic"

    def build_payload(self, issue: SourceIssue, user_map: UserMap, run: _Run) -> dict[str, Any]:
        payload = super().build_payload(issue, user_map, run)
        payload["color"] = random_color()

        start_date = self._start_date(issue)
        if start_date is not None:
            payload["start_date_is_fixed"] = True
            payload["start_date_fixed"] = start_date.isoformat()

        if issue.due_date is not None:
            payload["due_date_is_fixed"] = True
            payload["due_date_fixed"] = issue.due_date.isoformat()
        return payload

    def _start_date(self, issue: SourceIssue) -> dt.date | None:
        field_name = self._config.epic_start_date_field
        if not field_name:
            return None

        value = issue.custom_fields.get(field_name)
        if not isinstance(value, str):
            logger.warning(f"Unable to convert epic start date from Jira issue {issue.key} to GitLab start date")
            return None

        try:
            return dt.datetime.strptime(value, START_DATE_FORMAT).date()  # noqa: DTZ007
        except ValueError as e:
            msg = f"Invalid start date {value!r} in field {field_name}, expected YYYY-MM-DD"
            raise ConfigError(msg, operation="parse epic start date") from e


class IssueConverter(EntityConverter):
    """Converts Jira issues into issues of the configured GitLab project."""

    kind = "issue"

    def build_payload(self, issue: SourceIssue, user_map: UserMap, run: _Run) -> dict[str, Any]:
        payload = super().build_payload(issue, user_map, run)
        if issue.due_date is not None:
            payload["due_date"] = issue.due_date.isoformat()
        return payload
