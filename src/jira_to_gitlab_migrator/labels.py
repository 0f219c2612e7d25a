"""
Label translation and mapping from Jira labels to GitLab labels.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import TYPE_CHECKING

from .exceptions import TransportError
from .utils import random_color

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from .models import EntityKind
    from .protocols import TargetSystem

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_LABEL_DESCRIPTION = "Imported from Jira"


class LabelTranslator:
    """Handles label translation patterns."""

    def __init__(self, patterns: Sequence[str] | None) -> None:
        self.patterns: list[tuple[str, str]] = []

        for pattern in patterns or []:
            if ":" not in pattern:
                msg = f"Invalid pattern format: {pattern}"
                raise ValueError(msg)
            source, target = pattern.split(":", 1)
            self.patterns.append((source, target))

    def translate(self, label_name: str) -> str:
        """Translate a label name using configured patterns."""
        for source_pattern, target_pattern in self.patterns:
            if "*" in source_pattern:
                # Convert glob pattern to regex
                regex_pattern = re.escape(source_pattern).replace(r"\*", "(.*)")
                match = re.match(f"^{regex_pattern}$", label_name)
                if match:
                    return target_pattern.replace("*", match.group(1))
            elif source_pattern == label_name:
                return target_pattern
        return label_name


class LabelMapper:
    """Maps Jira labels to GitLab labels, creating missing ones.

    Matching with existing GitLab labels is case-insensitive. Existing label
    names are fetched once per scope (group for epics, project for issues)
    and cached; the cache is shared by concurrent conversions.
    """

    _target: TargetSystem
    _translator: LabelTranslator
    _known: dict[EntityKind, dict[str, str]]
    _lock: threading.Lock

    def __init__(self, target: TargetSystem, translator: LabelTranslator | None = None) -> None:
        self._target = target
        self._translator = translator or LabelTranslator(None)
        self._known = {}
        self._lock = threading.Lock()

    def _existing(self, kind: EntityKind) -> dict[str, str]:
        if kind not in self._known:
            # lowercase name -> actual name
            self._known[kind] = {name.lower(): name for name in self._target.list_labels(kind)}
        return self._known[kind]

    def map_labels(self, labels: Iterable[str], kind: EntityKind) -> list[str]:
        """Translate labels and make sure each one exists in the target scope.

        Returns:
            GitLab label names in source order, without duplicates
        """
        result: list[str] = []
        with self._lock:
            existing = self._existing(kind)
            for jira_label in labels:
                translated = self._translator.translate(jira_label).strip()
                if not translated:
                    continue

                name = existing.get(translated.lower())
                if name is None:
                    name = self._create(kind, translated)
                    existing[name.lower()] = name

                if name not in result:
                    result.append(name)
        return result

    def _create(self, kind: EntityKind, name: str) -> str:
        try:
            created = self._target.create_label(kind, name, random_color(), DEFAULT_LABEL_DESCRIPTION)
        except TransportError:
            # Another migration run may have created it in the meantime
            refreshed = {n.lower(): n for n in self._target.list_labels(kind)}
            if name.lower() in refreshed:
                logger.debug(f"Label already existed: {refreshed[name.lower()]}")
                return refreshed[name.lower()]
            raise
        logger.info(f"Created {kind} label: {created}")
        return created
