from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Final
from urllib.parse import quote

import requests
from gitlab import Gitlab
from gitlab.exceptions import GitlabError

from . import utils
from .exceptions import TransportError
from .models import Note, TargetEntity, UploadedFile

if TYPE_CHECKING:
    import datetime as dt

    from gitlab.v4.objects import Group as GitlabGroup
    from gitlab.v4.objects import Project as GitlabProject

    from .models import EntityKind

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "GITLAB_TOKEN"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "gitlab/cli/token"  # noqa: S105

_REMOTE_ERRORS = (GitlabError, requests.RequestException)


def get_token(pass_path: str | None = None) -> str | None:
    """Get GitLab token from pass path, env var GITLAB_TOKEN, or default pass location."""
    # Try pass path first
    if pass_path:
        return utils.get_pass_value(pass_path)

    # Try environment variable
    token: str | None = os.environ.get(_TOKEN_ENV_VAR)
    if token:
        return token

    # Try default pass location
    try:
        return utils.get_pass_value(_DEFAULT_TOKEN_PASS_PATH)
    except (ValueError, utils.PassError):
        logger.warning("No GitLab token specified nor found")
        return None


def get_client(url: str, token: str | None = None) -> Gitlab:
    """Get a GitLab client using the token."""
    return Gitlab(url, private_token=token, retry_transient_errors=True)


def _entity_from(kind: EntityKind, obj: Any) -> TargetEntity:  # noqa: ANN401 - gitlab has no type stubs
    labels: list[str] = getattr(obj, "labels", None) or []
    return TargetEntity(
        id=obj.id,
        iid=obj.iid,
        kind=kind,
        title=obj.title,
        web_url=getattr(obj, "web_url", ""),
        state=getattr(obj, "state", "opened"),
        labels=tuple(labels),
    )


class GitLabTarget:
    """Creates epics, issues, notes, labels and uploads through python-gitlab.

    Epics go to ``epic_group``. Issues go to ``issue_project``, which is also
    the staging project for uploads since epics have no upload endpoint.
    """

    _client: Gitlab
    _group: GitlabGroup
    _project: GitlabProject
    _group_path: str
    _project_path: str

    def __init__(self, client: Gitlab, *, epic_group: str, issue_project: str) -> None:
        self._client = client
        self._group_path = quote(epic_group, safe="")
        self._project_path = quote(issue_project, safe="")
        self._group = client.groups.get(epic_group, lazy=True)
        self._project = client.projects.get(issue_project, lazy=True)

    def _entity_path(self, kind: EntityKind, entity: TargetEntity) -> str:
        if kind == "epic":
            return f"/groups/{self._group_path}/epics/{entity.iid}"
        return f"/projects/{self._project_path}/issues/{entity.iid}"

    def create_entity(self, kind: EntityKind, payload: dict[str, Any]) -> TargetEntity:
        manager = self._group.epics if kind == "epic" else self._project.issues
        try:
            obj = manager.create(payload)
        except _REMOTE_ERRORS as e:
            msg = f"Failed to create GitLab {kind} '{payload.get('title')}': {e}"
            raise TransportError(msg, operation=f"create {kind}") from e
        return _entity_from(kind, obj)

    def create_note(
        self,
        kind: EntityKind,
        entity: TargetEntity,
        body: str,
        created_at: dt.datetime | None = None,
    ) -> Note:
        data: dict[str, Any] = {"body": body}
        if kind == "epic":
            # Epic notes are addressed by the epic's global id and take no created_at
            path = f"/groups/{self._group_path}/epics/{entity.id}/notes"
        else:
            path = f"/projects/{self._project_path}/issues/{entity.iid}/notes"
            if created_at is not None:
                data["created_at"] = created_at.isoformat()

        try:
            result = self._client.http_post(path, post_data=data)
        except _REMOTE_ERRORS as e:
            msg = f"Failed to create note on GitLab {kind} {entity.iid}: {e}"
            raise TransportError(msg, operation="create note") from e

        note: dict[str, Any] = result if isinstance(result, dict) else {}
        return Note(id=note.get("id", 0), body=note.get("body", body))

    def update_entity_state(self, kind: EntityKind, entity: TargetEntity, state_event: str) -> None:
        try:
            self._client.http_put(self._entity_path(kind, entity), post_data={"state_event": state_event})
        except _REMOTE_ERRORS as e:
            msg = f"Failed to {state_event} GitLab {kind} {entity.iid}: {e}"
            raise TransportError(msg, operation=f"{state_event} {kind}") from e

    def upload_attachment(self, filename: str, content: bytes) -> UploadedFile:
        try:
            result = self._project.upload(filename, filedata=content)
        except _REMOTE_ERRORS as e:
            msg = f"Failed to upload {filename} to staging project: {e}"
            raise TransportError(msg, operation=f"upload attachment {filename}") from e
        return UploadedFile(markdown=result["markdown"], name=result.get("alt", filename))

    def list_labels(self, kind: EntityKind) -> list[str]:
        manager = self._group.labels if kind == "epic" else self._project.labels
        try:
            return [label.name for label in manager.list(get_all=True)]
        except _REMOTE_ERRORS as e:
            msg = f"Failed to list GitLab {kind} labels: {e}"
            raise TransportError(msg, operation="list labels") from e

    def create_label(self, kind: EntityKind, name: str, color: str, description: str = "") -> str:
        manager = self._group.labels if kind == "epic" else self._project.labels
        try:
            label = manager.create({"name": name, "color": color, "description": description})
        except _REMOTE_ERRORS as e:
            msg = f"Failed to create GitLab {kind} label {name}: {e}"
            raise TransportError(msg, operation=f"create label {name}") from e
        return label.name

    def get_user_identity(self, email: str) -> str | None:
        try:
            users = self._client.users.list(search=email, get_all=False)
        except _REMOTE_ERRORS as e:
            msg = f"Failed to look up GitLab user {email}: {e}"
            raise TransportError(msg, operation="look up user") from e
        return users[0].username if users else None
