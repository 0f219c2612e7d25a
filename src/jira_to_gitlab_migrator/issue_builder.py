"""Build migration headers for GitLab descriptions and notes."""

from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Comment, Person, SourceIssue, UserMap


def format_timestamp(timestamp: dt.datetime | str | None) -> str:
    """Format a timestamp to human-readable format.

    Args:
        timestamp: datetime or ISO 8601 formatted timestamp string

    Returns:
        Formatted timestamp (e.g., "2024-01-15 10:30:45Z").
        Returns original value if parsing fails, "" for None.
    """
    if timestamp is None:
        return ""
    if isinstance(timestamp, str):
        if not timestamp:
            return timestamp
        try:
            timestamp = dt.datetime.fromisoformat(timestamp)
        except (ValueError, AttributeError):
            return timestamp

    formatted = timestamp.isoformat(sep=" ", timespec="seconds")
    return formatted.replace("+00:00", "Z")


def format_person(person: Person | None, user_map: UserMap) -> str:
    """Render a Jira user as a GitLab mention when mapped, else by name."""
    if person is None:
        return "Unknown"
    for key in (person.name, person.email):
        if key and key in user_map:
            return f"@{user_map[key]}"
    return person.display_name or person.name or "Unknown"


def build_description_header(issue: SourceIssue, user_map: UserMap, *, is_epic: bool) -> str:
    """Build the header placed above a migrated description.

    Args:
        issue: Jira issue being migrated
        user_map: Jira user -> GitLab username mapping
        is_epic: Whether the target is a GitLab epic

    Returns:
        Markdown header ending with a horizontal rule
    """
    kind = "epic" if is_epic else "issue"
    reference = f"[{issue.key}]({issue.web_url})" if issue.web_url else issue.key
    header = f"**Migrated from Jira {kind} {reference}**\n"
    header += f"**Original Author:** {format_person(issue.reporter, user_map)}\n"
    if issue.created_at is not None:
        header += f"**Created:** {format_timestamp(issue.created_at)}\n"
    header += "\n---\n\n"
    return header


def build_note_header(comment: Comment, user_map: UserMap, *, is_epic: bool) -> str:
    """Build the header placed above a migrated comment.

    Issue notes keep their original time through the API, epic notes can't,
    so the original time is only written into epic note headers.
    """
    header = f"**Original Author:** {format_person(comment.author, user_map)}\n"
    if is_epic and comment.created_at is not None:
        header += f"**Created:** {format_timestamp(comment.created_at)}\n"
    header += "\n---\n\n"
    return header
