"""
Command-line interface for the Jira to GitLab migration tool.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

from .config import MigrationConfig
from .exceptions import MigrationError
from .migrator import JiraToGitLabMigrator
from .utils import setup_logging


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Migrate Jira issues and epics to GitLab issues and epics")

    # Positional arguments
    _ = parser.add_argument("jql", nargs="?", help="JQL query selecting the Jira issues (default: $JIRA_JQL)")

    # Optional arguments
    _ = parser.add_argument("--jira-url", dest="jira_url", help="Jira base URL (default: $JIRA_URL)")
    _ = parser.add_argument("--gitlab-url", dest="gitlab_url", help="GitLab base URL (default: $GITLAB_URL)")
    _ = parser.add_argument(
        "--epic-group", dest="epic_group", help="GitLab group receiving epics (default: $GITLAB_EPIC_GROUP)"
    )
    _ = parser.add_argument(
        "--issue-project",
        dest="issue_project",
        help="GitLab project path receiving issues and attachments (default: $GITLAB_ISSUE_PROJECT)",
    )
    _ = parser.add_argument(
        "--start-date-field",
        dest="epic_start_date_field",
        help="Jira custom field holding epic start dates (default: $JIRA_EPIC_START_DATE_FIELD)",
    )
    _ = parser.add_argument(
        "--relabel",
        "-l",
        dest="label_translations",
        action="append",
        help='Label translation pattern (format: "source_pattern:target_pattern"). Can be specified multiple times.',
    )
    _ = parser.add_argument(
        "--concurrency", "-j", type=int, help="Parallel uploads and notes per issue (default: 5)"
    )
    _ = parser.add_argument(
        "--gitlab-pass-token", dest="gitlab_pass_path", help="Path for GitLab token in pass utility"
    )
    _ = parser.add_argument("--jira-pass-token", dest="jira_pass_path", help="Path for Jira token in pass utility")
    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return parser.parse_args(argv)


def _print_report(report: dict[str, Any]) -> None:
    """Print the migration report."""
    print("=" * 60)
    print(f"Jira query: {report['jql']}")
    print(f"Result: {'PASSED' if report['success'] else 'FAILED'}")

    for key, value in report["statistics"].items():
        print(f"  {key}: {value}")

    if report["migrated"]:
        print("Migrated:")
        for jira_key, url in report["migrated"].items():
            print(f"  {jira_key} -> {url}")

    if report["warnings"]:
        print("Warnings:")
        for warning in report["warnings"]:
            print(f"  - {warning}")

    if report["errors"]:
        print("Errors:")
        for error in report["errors"]:
            print(f"  - {error}")


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    # Setup logging
    verbose: bool = getattr(args, "verbose", False)
    setup_logging(verbose=verbose)
    logger = logging.getLogger(__name__)

    try:
        config = MigrationConfig.from_env().apply_args(args)
        migrator = JiraToGitLabMigrator(config)
        report = migrator.migrate()
    except MigrationError as e:
        logger.error(f"Migration failed: {e}")  # noqa: TRY400
        sys.exit(1)
    except Exception:
        logger.exception("Migration failed")
        sys.exit(1)

    _print_report(report)
    sys.exit(0 if report["success"] else 1)
