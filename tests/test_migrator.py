"""Tests for the batch migrator."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from jira_to_gitlab_migrator.exceptions import ConfigError, MigrationError
from jira_to_gitlab_migrator.migrator import JiraToGitLabMigrator
from jira_to_gitlab_migrator.models import Attachment, Comment, Person, SourceIssue

if TYPE_CHECKING:
    from conftest import FakeGitLab, FakeJira

    from jira_to_gitlab_migrator.config import MigrationConfig

JDOE = Person(name="jdoe", display_name="John Doe", email="john@example.com")
GHOST = Person(name="ghost", display_name="Ghost", email="ghost@example.com")


@pytest.mark.unit
class TestJiraToGitLabMigrator:
    def test_invalid_config_rejected(self, config: MigrationConfig, fake_jira: FakeJira, fake_gitlab: FakeGitLab) -> None:
        config.gitlab_url = ""
        with pytest.raises(ConfigError, match="gitlab_url"):
            JiraToGitLabMigrator(config, source=fake_jira, target=fake_gitlab)

    def test_no_query(self, config: MigrationConfig, fake_jira: FakeJira, fake_gitlab: FakeGitLab) -> None:
        migrator = JiraToGitLabMigrator(config, source=fake_jira, target=fake_gitlab)
        with pytest.raises(MigrationError, match="No JQL query"):
            migrator.migrate()

    def test_epics_and_issues_routed(self, config: MigrationConfig, fake_jira: FakeJira, fake_gitlab: FakeGitLab) -> None:
        fake_jira.issues = [
            SourceIssue(key="PROJ-1", summary="Epic", issue_type="Epic"),
            SourceIssue(key="PROJ-2", summary="Story", issue_type="Story", resolution="Done"),
        ]
        config.epic_start_date_field = ""

        report = JiraToGitLabMigrator(config, source=fake_jira, target=fake_gitlab).migrate("project = PROJ")

        assert [kind for kind, _, _ in fake_gitlab.entities] == ["epic", "issue"]
        assert report["success"] is True
        assert report["jql"] == "project = PROJ"
        assert report["statistics"]["epics_created"] == 1
        assert report["statistics"]["issues_created"] == 1
        assert report["migrated"] == {
            "PROJ-1": "https://gitlab.example.com/epics/1",
            "PROJ-2": "https://gitlab.example.com/issues/2",
        }

    def test_batch_continues_after_failure(
        self, config: MigrationConfig, fake_jira: FakeJira, fake_gitlab: FakeGitLab
    ) -> None:
        fake_jira.failing_downloads.add("broken.png")
        broken = Attachment(id="1", filename="broken.png", content_url="")
        fake_jira.issues = [
            SourceIssue(key="PROJ-1", summary="Fails", attachments=(broken,)),
            SourceIssue(key="PROJ-2", summary="Works"),
        ]

        report = JiraToGitLabMigrator(config, source=fake_jira, target=fake_gitlab).migrate("project = PROJ")

        assert report["success"] is False
        assert len(report["errors"]) == 1
        assert "PROJ-1" in report["errors"][0]
        assert report["statistics"]["failed"] == 1
        assert report["statistics"]["partially_migrated"] == 0
        assert list(report["migrated"]) == ["PROJ-2"]

    def test_batch_continues_after_unexpected_error(
        self, config: MigrationConfig, fake_jira: FakeJira, fake_gitlab: FakeGitLab
    ) -> None:
        fake_jira.issues = [
            SourceIssue(key="PROJ-1", summary="Explodes"),
            SourceIssue(key="PROJ-2", summary="Works"),
        ]
        create_entity = fake_gitlab.create_entity

        def explode_on_first(kind, payload):  # noqa: ANN001, ANN202
            if payload["title"] == "Explodes":
                msg = "boom"
                raise RuntimeError(msg)
            return create_entity(kind, payload)

        with patch.object(fake_gitlab, "create_entity", side_effect=explode_on_first):
            report = JiraToGitLabMigrator(config, source=fake_jira, target=fake_gitlab).migrate("project = PROJ")

        assert report["success"] is False
        assert report["errors"] == ["PROJ-1: unexpected error: RuntimeError('boom')"]
        assert report["statistics"]["failed"] == 1
        assert report["statistics"]["issues_created"] == 1
        assert list(report["migrated"]) == ["PROJ-2"]

    def test_partial_migration_reported_with_entity(
        self, config: MigrationConfig, fake_jira: FakeJira, fake_gitlab: FakeGitLab
    ) -> None:
        fake_gitlab.fail_notes_containing = "boom"
        fake_jira.issues = [SourceIssue(key="PROJ-1", summary="Half", comments=(Comment(id="1", body="boom"),))]

        report = JiraToGitLabMigrator(config, source=fake_jira, target=fake_gitlab).migrate("project = PROJ")

        assert report["statistics"]["partially_migrated"] == 1
        assert report["migrated"] == {"PROJ-1": "https://gitlab.example.com/issues/1"}

    def test_close_failure_is_a_warning(
        self, config: MigrationConfig, fake_jira: FakeJira, fake_gitlab: FakeGitLab
    ) -> None:
        fake_gitlab.fail_state_update = True
        fake_jira.issues = [SourceIssue(key="PROJ-1", summary="Done", resolution="Fixed")]

        report = JiraToGitLabMigrator(config, source=fake_jira, target=fake_gitlab).migrate("project = PROJ")

        assert report["success"] is True
        assert report["statistics"]["state_update_failures"] == 1
        assert len(report["warnings"]) == 1

    def test_statistics_count_notes_and_attachments(
        self, config: MigrationConfig, fake_jira: FakeJira, fake_gitlab: FakeGitLab
    ) -> None:
        fake_jira.issues = [
            SourceIssue(
                key="PROJ-1",
                summary="Busy",
                comments=(Comment(id="1", body="one"), Comment(id="2", body="two")),
                attachments=(Attachment(id="3", filename="a.png", content_url=""),),
            )
        ]

        report = JiraToGitLabMigrator(config, source=fake_jira, target=fake_gitlab).migrate("project = PROJ")

        stats = report["statistics"]
        assert stats["notes_created"] == 3
        assert stats["attachments_relocated"] == 1
        assert stats["attachments_posted"] == 1

    def test_query_from_config(self, config: MigrationConfig, fake_jira: FakeJira, fake_gitlab: FakeGitLab) -> None:
        config.jql = "project = CONF"

        with patch.object(fake_jira, "search_issues", return_value=iter([])) as mock_search:
            report = JiraToGitLabMigrator(config, source=fake_jira, target=fake_gitlab).migrate()

        mock_search.assert_called_once_with("project = CONF")
        assert report["statistics"]["issues_total"] == 0


@pytest.mark.unit
class TestBuildUserMap:
    def test_maps_name_and_email(self, config: MigrationConfig, fake_jira: FakeJira, fake_gitlab: FakeGitLab) -> None:
        fake_gitlab.users = {"john@example.com": "john"}
        issues = [
            SourceIssue(
                key="PROJ-1",
                summary="a",
                comments=(
                    Comment(id="1", body="", author=JDOE),
                    Comment(id="2", body="", author=GHOST),
                    Comment(id="3", body="", author=Person(name="noemail")),
                ),
            )
        ]

        user_map = JiraToGitLabMigrator(config, source=fake_jira, target=fake_gitlab).build_user_map(issues)

        assert user_map == {"jdoe": "john", "john@example.com": "john"}

    def test_mentions_rendered_with_gitlab_username(
        self, config: MigrationConfig, fake_jira: FakeJira, fake_gitlab: FakeGitLab
    ) -> None:
        fake_gitlab.users = {"john@example.com": "john"}
        fake_jira.issues = [
            SourceIssue(key="PROJ-1", summary="a", comments=(Comment(id="1", body="cc [~jdoe]", author=JDOE),))
        ]

        JiraToGitLabMigrator(config, source=fake_jira, target=fake_gitlab).migrate("project = PROJ")

        (_, body, _) = fake_gitlab.notes[0]
        assert body.startswith("**Original Author:** @john\n")
        assert body.endswith("cc @john")
