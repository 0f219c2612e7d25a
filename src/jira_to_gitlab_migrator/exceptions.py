"""
Custom exception classes for the Jira to GitLab migration tool.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import TargetEntity


class MigrationError(Exception):
    """Base exception for migration errors.

    Carries the Jira issue key and the operation that failed, when known, so
    a batch report can point at the failing step.
    """

    issue_key: str | None
    operation: str | None

    def __init__(self, message: str, *, issue_key: str | None = None, operation: str | None = None) -> None:
        super().__init__(message)
        self.issue_key = issue_key
        self.operation = operation


class TransportError(MigrationError):
    """Raised when a remote call to Jira or GitLab fails."""


class FormatError(MigrationError):
    """Raised when Jira markup or a GitLab upload fragment has an unexpected shape."""


class ConfigError(MigrationError):
    """Raised when the configuration is missing values or cannot be applied."""


class PartialMigrationError(MigrationError):
    """Raised when a step fails after the target entity was already created.

    The remote writes done so far are not rolled back; ``entity`` is the
    created epic or issue so callers can clean up or report it.
    """

    entity: TargetEntity | None

    def __init__(
        self,
        message: str,
        *,
        issue_key: str | None = None,
        operation: str | None = None,
        entity: TargetEntity | None = None,
    ) -> None:
        super().__init__(message, issue_key=issue_key, operation=operation)
        self.entity = entity


class StateUpdateError(MigrationError):
    """Closing a migrated entity failed.

    Never raised out of a conversion: the migration itself succeeded, so the
    error is logged and attached to the conversion result.
    """
