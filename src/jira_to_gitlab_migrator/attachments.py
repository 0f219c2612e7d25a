"""Attachment relocation from Jira to the GitLab staging project.

GitLab epics have no upload endpoint, so every attachment is uploaded to a
staging project and embedded through an absolute URL that works from any
group or project on the same host.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import TYPE_CHECKING

from .exceptions import FormatError, MigrationError
from .models import RelocatedAttachment
from .task_group import DEFAULT_LIMIT, BoundedTaskGroup

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import Attachment
    from .protocols import SourceSystem, TargetSystem

logger: logging.Logger = logging.getLogger(__name__)

EMBED_PATTERN = re.compile(r"!\[(.+)\]\((.+)\)")


def absolute_upload_url(host: str, staging_project: str, relative_url: str) -> str:
    """Turn an upload URL relative to the staging project into an absolute one.

    Args:
        host: GitLab base URL (e.g., "https://gitlab.example.com")
        staging_project: Full path of the staging project (e.g., "group/issues")
        relative_url: URL as returned by the upload (e.g., "/uploads/<secret>/a.png")

    Returns:
        "{host}/{staging_project}/{relative_url}" with duplicate slashes and a
        leading "./" removed. Already absolute URLs are returned unchanged.
    """
    if re.match(r"^[a-z][a-z0-9+.-]*://", relative_url, re.IGNORECASE):
        return relative_url
    relative = relative_url.removeprefix("./").lstrip("/")
    return f"{host.rstrip('/')}/{staging_project.strip('/')}/{relative}"


def rewrite_embed(markdown: str, host: str, staging_project: str) -> str:
    """Rewrite an upload markdown fragment to point at an absolute URL.

    Raises:
        FormatError: If the fragment is not of the form ``![alt](url)``
    """
    match = EMBED_PATTERN.search(markdown)
    if match is None:
        msg = f"Unexpected upload markdown: {markdown!r}"
        raise FormatError(msg, operation="parse upload markdown")

    alt, url = match.groups()
    return f"![{alt}]({absolute_upload_url(host, staging_project, url)})"


class AttachmentRelocator:
    """Downloads Jira attachments and uploads them to the staging project.

    One ``relocate()`` call handles all attachments of one issue in parallel.
    Results are collected in a mapping keyed by the Jira attachment id.
    """

    _source: SourceSystem
    _target: TargetSystem
    _host: str
    _staging_project: str
    _limit: int

    def __init__(
        self,
        source: SourceSystem,
        target: TargetSystem,
        *,
        host: str,
        staging_project: str,
        limit: int = DEFAULT_LIMIT,
    ) -> None:
        self._source = source
        self._target = target
        self._host = host
        self._staging_project = staging_project
        self._limit = limit

    def relocate(self, attachments: Sequence[Attachment], context: str = "") -> dict[str, RelocatedAttachment]:
        """Relocate every attachment.

        Args:
            attachments: Attachments of one Jira issue
            context: Context for log messages (e.g., "PROJ-1")

        Returns:
            Mapping from Jira attachment id to the relocated attachment, in the
            order of ``attachments``

        Raises:
            MigrationError: The first relocation failure; the partial mapping is discarded
        """
        relocated: dict[str, RelocatedAttachment] = {}
        lock = threading.Lock()

        def relocate_one(attachment: Attachment) -> None:
            result = self.relocate_one(attachment)
            with lock:
                relocated[attachment.id] = result

        group = BoundedTaskGroup(self._limit, name="attachment-relocation")
        group.run(lambda a=attachment: relocate_one(a) for attachment in attachments)

        if relocated:
            ctx = f" for {context}" if context else ""
            logger.info(f"Relocated {len(relocated)} attachments{ctx}")
        # Tasks finish in any order
        return {attachment.id: relocated[attachment.id] for attachment in attachments}

    def relocate_one(self, attachment: Attachment) -> RelocatedAttachment:
        """Download, upload and rewrite a single attachment."""
        try:
            content = self._source.download_attachment(attachment)
            uploaded = self._target.upload_attachment(attachment.filename, content)
            markdown = rewrite_embed(uploaded.markdown, self._host, self._staging_project)
        except MigrationError as e:
            e.operation = e.operation or f"relocate attachment {attachment.filename}"
            raise

        logger.debug(f"Relocated attachment {attachment.id} ({uploaded.name}): {markdown}")
        return RelocatedAttachment(
            markdown=markdown,
            name=attachment.filename,
            created_at=attachment.created_at,
        )
