from unittest.mock import Mock

import pytest

from jira_to_gitlab_migrator.exceptions import TransportError
from jira_to_gitlab_migrator.labels import DEFAULT_LABEL_DESCRIPTION, LabelMapper, LabelTranslator
from jira_to_gitlab_migrator.utils import COLOR_PALETTE


@pytest.mark.unit
class TestLabelMapper:
    """Test mapping Jira labels onto GitLab labels."""

    def _target(self, existing: list[str] | None = None) -> Mock:
        target = Mock()
        target.list_labels.return_value = existing or []
        target.create_label.side_effect = lambda kind, name, color, description="": name
        return target

    def test_existing_label_reused_case_insensitively(self) -> None:
        target = self._target(["Bug"])

        result = LabelMapper(target).map_labels(["bug"], "issue")

        assert result == ["Bug"]
        target.create_label.assert_not_called()

    def test_missing_label_is_created(self) -> None:
        target = self._target()

        result = LabelMapper(target).map_labels(["backend"], "epic")

        assert result == ["backend"]
        kind, name, color, description = target.create_label.call_args.args
        assert (kind, name, description) == ("epic", "backend", DEFAULT_LABEL_DESCRIPTION)
        assert color in COLOR_PALETTE

    def test_duplicates_and_empty_labels_dropped(self) -> None:
        target = self._target(["ui"])

        result = LabelMapper(target).map_labels(["UI", "ui", " ", "api", "api"], "issue")

        assert result == ["ui", "api"]
        assert target.create_label.call_count == 1

    def test_labels_listed_once_per_kind(self) -> None:
        target = self._target(["ui"])
        mapper = LabelMapper(target)

        mapper.map_labels(["ui", "new"], "issue")
        mapper.map_labels(["new"], "issue")
        mapper.map_labels(["ui"], "epic")

        assert [c.args for c in target.list_labels.call_args_list] == [("issue",), ("epic",)]
        assert target.create_label.call_count == 1

    def test_translation_applied_before_lookup(self) -> None:
        target = self._target(["priority::high"])

        result = LabelMapper(target, LabelTranslator(["p_*:priority::*"])).map_labels(["p_high"], "issue")

        assert result == ["priority::high"]
        target.create_label.assert_not_called()

    def test_label_created_concurrently_is_reused(self) -> None:
        """When create_label fails because the label appeared meanwhile, use the existing label."""
        target = Mock()
        target.list_labels.side_effect = [[], ["Release"]]
        target.create_label.side_effect = TransportError("Label already exists")

        result = LabelMapper(target).map_labels(["release"], "issue")

        assert result == ["Release"]

    def test_create_failure_propagates(self) -> None:
        target = Mock()
        target.list_labels.return_value = []
        target.create_label.side_effect = TransportError("Forbidden")

        with pytest.raises(TransportError, match="Forbidden"):
            LabelMapper(target).map_labels(["release"], "issue")


@pytest.mark.unit
class TestLabelTranslator:
    """Test label translation functionality."""

    def test_simple_translation(self) -> None:
        translator = LabelTranslator(["p_high:priority: high", "bug:defect"])
        assert translator.translate("p_high") == "priority: high"
        assert translator.translate("bug") == "defect"
        assert translator.translate("unknown") == "unknown"

    def test_wildcard_translation(self) -> None:
        translator = LabelTranslator(["p_*:priority: *", "status_*:status: *"])
        assert translator.translate("p_high") == "priority: high"
        assert translator.translate("status_open") == "status: open"
        assert translator.translate("unmatched") == "unmatched"

    def test_wildcard_with_regex_characters(self) -> None:
        translator = LabelTranslator(["v1.*:version::1.*"])
        assert translator.translate("v1.2") == "version::1.2"
        assert translator.translate("v102") == "v102"

    def test_invalid_pattern(self) -> None:
        with pytest.raises(ValueError, match="Invalid pattern format"):
            LabelTranslator(["invalid_pattern"])
