"""
Configuration for the Jira to GitLab migration tool.

Values come from CLI flags first, then environment variables. Tokens are not
stored here; they are looked up by ``gitlab_utils.get_token`` and
``jira_utils.get_token`` from pass paths or the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any, Final

from .exceptions import ConfigError
from .task_group import DEFAULT_LIMIT

if TYPE_CHECKING:
    import argparse
    from collections.abc import Mapping

# Config field -> environment variable
ENV_VARS: Final[dict[str, str]] = {
    "gitlab_url": "GITLAB_URL",
    "jira_url": "JIRA_URL",
    "epic_group": "GITLAB_EPIC_GROUP",
    "issue_project": "GITLAB_ISSUE_PROJECT",
    "epic_start_date_field": "JIRA_EPIC_START_DATE_FIELD",
    "jql": "JIRA_JQL",
}

_REQUIRED: Final[tuple[str, ...]] = ("gitlab_url", "jira_url", "epic_group", "issue_project")


@dataclass
class MigrationConfig:
    """Settings shared by the batch driver and the converters."""

    gitlab_url: str = ""
    """GitLab base URL, also the prefix of relocated attachment links."""
    jira_url: str = ""
    epic_group: str = ""
    """Group (path or id) that receives migrated epics."""
    issue_project: str = ""
    """Project path that receives migrated issues and hosts all uploaded attachments."""
    epic_start_date_field: str = ""
    """Jira custom field (e.g. "customfield_10015") holding an epic's start date."""
    jql: str = ""
    label_translations: list[str] = field(default_factory=list)
    attachment_concurrency: int = DEFAULT_LIMIT
    comment_concurrency: int = DEFAULT_LIMIT
    orphan_concurrency: int = DEFAULT_LIMIT
    gitlab_pass_path: str | None = None
    jira_pass_path: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> MigrationConfig:
        """Build a config from environment variables."""
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {name: env[var] for name, var in ENV_VARS.items() if env.get(var)}
        concurrency = env.get("MIGRATION_CONCURRENCY")
        if concurrency:
            try:
                limit = int(concurrency)
            except ValueError as e:
                msg = f"MIGRATION_CONCURRENCY must be an integer, got {concurrency!r}"
                raise ConfigError(msg) from e
            values |= {
                "attachment_concurrency": limit,
                "comment_concurrency": limit,
                "orphan_concurrency": limit,
            }
        return cls(**values)

    def apply_args(self, args: argparse.Namespace) -> MigrationConfig:
        """Override settings with CLI arguments that were given (not None)."""
        for f in fields(self):
            value = getattr(args, f.name, None)
            if value is not None:
                setattr(self, f.name, value)
        concurrency: int | None = getattr(args, "concurrency", None)
        if concurrency is not None:
            self.attachment_concurrency = self.comment_concurrency = self.orphan_concurrency = concurrency
        return self

    @property
    def staging_project(self) -> str:
        """Project hosting uploaded attachments."""
        return self.issue_project

    def validate(self) -> None:
        """Check that all required settings are present and usable.

        Raises:
            ConfigError: Listing every problem found
        """
        problems: list[str] = []

        missing = [f"{name} ({ENV_VARS[name]})" for name in _REQUIRED if not getattr(self, name)]
        if missing:
            problems.append(f"missing settings: {', '.join(missing)}")

        if self.issue_project and self.issue_project.isdigit():
            # Absolute attachment links are built from the project path
            problems.append(f"issue_project must be a full project path, not an id: {self.issue_project}")

        for name in ("gitlab_url", "jira_url"):
            url: str = getattr(self, name)
            if url and not url.startswith(("http://", "https://")):
                problems.append(f"{name} must start with http:// or https://: {url}")

        for name in ("attachment_concurrency", "comment_concurrency", "orphan_concurrency"):
            limit: int = getattr(self, name)
            if limit < 1:
                problems.append(f"{name} must be at least 1, got {limit}")

        for pattern in self.label_translations:
            if ":" not in pattern:
                problems.append(f"invalid label translation pattern: {pattern}")

        if problems:
            msg = "Invalid configuration: " + "; ".join(problems)
            raise ConfigError(msg)
