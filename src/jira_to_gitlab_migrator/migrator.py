"""
Batch migration of Jira issues to GitLab epics and issues.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from gitlab.exceptions import GitlabAuthenticationError, GitlabError
from jira.exceptions import JIRAError

from . import gitlab_utils as glu
from . import jira_utils as jru
from .converter import EpicConverter, IssueConverter
from .exceptions import MigrationError, PartialMigrationError
from .labels import LabelMapper, LabelTranslator

if TYPE_CHECKING:
    from gitlab import Gitlab
    from jira import JIRA

    from .config import MigrationConfig
    from .converter import ConversionResult, EntityConverter
    from .models import SourceIssue, UserMap
    from .protocols import SourceSystem, TargetSystem

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)


class JiraToGitLabMigrator:
    """Migrates the Jira issues matching a JQL query.

    Jira epics become GitLab group epics, everything else becomes an issue in
    the configured project. Each issue is an independent unit of failure: a
    failed conversion is reported and the batch continues.
    """

    config: MigrationConfig
    source: SourceSystem
    target: TargetSystem
    jira_client: JIRA | None
    gitlab_client: Gitlab | None

    def __init__(
        self,
        config: MigrationConfig,
        *,
        source: SourceSystem | None = None,
        target: TargetSystem | None = None,
    ) -> None:
        config.validate()
        self.config = config
        self.jira_client = None
        self.gitlab_client = None

        if source is None:
            self.jira_client = jru.get_client(config.jira_url, jru.get_token(config.jira_pass_path))
            source = jru.JiraSource(self.jira_client, config.jira_url)
        if target is None:
            self.gitlab_client = glu.get_client(config.gitlab_url, glu.get_token(config.gitlab_pass_path))
            target = glu.GitLabTarget(
                self.gitlab_client, epic_group=config.epic_group, issue_project=config.issue_project
            )
        self.source = source
        self.target = target

        # Both converters share one label cache
        label_mapper = LabelMapper(target, LabelTranslator(config.label_translations))
        self.epic_converter: EntityConverter = EpicConverter(source, target, config, label_mapper=label_mapper)
        self.issue_converter: EntityConverter = IssueConverter(source, target, config, label_mapper=label_mapper)

        logger.info(f"Initialized migrator for {config.jira_url} -> {config.gitlab_url}")

    def validate_api_access(self) -> None:
        """Validate Jira and GitLab API access for clients created by this migrator."""
        if self.jira_client is not None:
            try:
                user = self.jira_client.myself()
                logger.info(f"Jira API access validated for {user.get('emailAddress') or user.get('name')}")
            except JIRAError as e:
                msg = f"Jira API access failed: {e}"
                raise MigrationError(msg) from e

        if self.gitlab_client is not None:
            try:
                self.gitlab_client.auth()
                logger.info("GitLab API access validated")
            except (GitlabError, GitlabAuthenticationError) as e:
                msg = f"GitLab API access failed: {e}"
                raise MigrationError(msg) from e

    def build_user_map(self, issues: list[SourceIssue]) -> UserMap:
        """Map every Jira user referenced by the issues to a GitLab username by email.

        Users without email or without a GitLab account are left out; they are
        rendered by display name.
        """
        user_map: UserMap = {}
        mapped = 0
        for person in self.source.get_users(issues):
            if not person.email:
                continue
            username = self.target.get_user_identity(person.email)
            if username is None:
                logger.debug(f"No GitLab user for Jira user {person.name} ({person.email})")
                continue
            user_map[person.name] = username
            user_map[person.email] = username
            mapped += 1
        logger.info(f"Mapped {mapped} Jira users to GitLab users")
        return user_map

    def converter_for(self, issue: SourceIssue) -> EntityConverter:
        return self.epic_converter if issue.is_epic else self.issue_converter

    def migrate_issue(self, issue: SourceIssue, user_map: UserMap) -> ConversionResult:
        """Convert a single Jira issue."""
        return self.converter_for(issue).convert(issue, user_map)

    def migrate(self, jql: str | None = None) -> dict[str, Any]:
        """Migrate all issues matching the JQL query.

        Returns:
            Report with "success", "errors", "migrated" (Jira key -> GitLab web URL)
            and "statistics"
        """
        query = jql or self.config.jql
        if not query:
            msg = "No JQL query given"
            raise MigrationError(msg)

        self.validate_api_access()
        issues = list(self.source.search_issues(query))
        user_map = self.build_user_map(issues)

        errors: list[str] = []
        warnings: list[str] = []
        migrated: dict[str, str] = {}
        statistics = {
            "issues_total": len(issues),
            "epics_created": 0,
            "issues_created": 0,
            "failed": 0,
            "partially_migrated": 0,
            "notes_created": 0,
            "attachments_relocated": 0,
            "attachments_posted": 0,
            "state_update_failures": 0,
        }

        for index, issue in enumerate(issues, start=1):
            print(f"[{index}/{len(issues)}] Migrating {issue.key}: {issue.summary}")
            try:
                result = self.migrate_issue(issue, user_map)
            except PartialMigrationError as e:
                logger.error(f"Partially migrated {issue.key}: {e}")  # noqa: TRY400
                errors.append(str(e))
                statistics["failed"] += 1
                statistics["partially_migrated"] += 1
                if e.entity is not None:
                    migrated[issue.key] = e.entity.web_url
                continue
            except MigrationError as e:
                logger.error(f"Failed to migrate {issue.key}: {e}")  # noqa: TRY400
                errors.append(str(e))
                statistics["failed"] += 1
                continue
            except Exception as e:
                logger.exception(f"Unexpected error migrating {issue.key}")
                errors.append(f"{issue.key}: unexpected error: {e!r}")
                statistics["failed"] += 1
                continue

            migrated[issue.key] = result.entity.web_url
            statistics["epics_created" if result.entity.kind == "epic" else "issues_created"] += 1
            statistics["notes_created"] += result.notes_created + result.orphans_posted
            statistics["attachments_relocated"] += result.attachments_relocated
            statistics["attachments_posted"] += result.orphans_posted
            if result.state_error is not None:
                statistics["state_update_failures"] += 1
                warnings.append(str(result.state_error))

        print(f"Migrated {len(issues) - statistics['failed']} of {len(issues)} Jira issues")
        return {
            "jql": query,
            "success": not errors,
            "errors": errors,
            "warnings": warnings,
            "migrated": migrated,
            "statistics": statistics,
        }
