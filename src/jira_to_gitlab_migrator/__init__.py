"""
Jira to GitLab Migration Tool

Migrates Jira issues and epics to GitLab issues and group epics, including
labels, attachments, comments and resolution state.
"""

from __future__ import annotations

from .cli import main
from .config import MigrationConfig
from .converter import ConversionResult, ConversionState, EpicConverter, IssueConverter
from .exceptions import (
    ConfigError,
    FormatError,
    MigrationError,
    PartialMigrationError,
    StateUpdateError,
    TransportError,
)
from .labels import LabelMapper, LabelTranslator
from .migrator import JiraToGitLabMigrator
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "ConversionResult",
    "ConversionState",
    "EpicConverter",
    "FormatError",
    "IssueConverter",
    "JiraToGitLabMigrator",
    "LabelMapper",
    "LabelTranslator",
    "MigrationConfig",
    "MigrationError",
    "PartialMigrationError",
    "StateUpdateError",
    "TransportError",
    "main",
    "setup_logging",
]
