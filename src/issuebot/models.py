"""Typed snapshots of GitHub webhook payloads.

``parse_event`` turns a decoded JSON payload into exactly one of the event
variants below. Missing or mistyped optional fields fall back to empty
defaults; a payload without an installation id or without any recognised
subject decodes to ``None``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Union

from .errors import MalformedPayloadError
from .logging import get_logger

_REPO_URL_PATTERN = re.compile(r"^(?P<repo>.+/repos/[^/]+/[^/]+)(?:/|$)")


def repository_url_from(url: str | None) -> str | None:
    """Derive ``.../repos/<owner>/<name>`` from any URL below it."""
    if not url:
        return None
    match = _REPO_URL_PATTERN.match(url)
    return match.group("repo") if match else None


def _str(data: dict[str, Any], key: str, default: str = "") -> str:
    value = data.get(key)
    return value if isinstance(value, str) else default


def _opt_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return value if isinstance(value, str) and value else None


def _int(data: dict[str, Any], key: str, default: int = -1) -> int:
    value = data.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return default


def _opt_int(data: dict[str, Any], key: str) -> int | None:
    value = _int(data, key)
    return None if value == -1 else value


def _dict(data: dict[str, Any], key: str) -> dict[str, Any] | None:
    value = data.get(key)
    return value if isinstance(value, dict) else None


def _names(values: Any, attr: str = "name") -> tuple[str, ...]:
    """Labels/assignees arrive as plain strings or as objects with a name."""
    if values is None:
        return ()
    if not isinstance(values, list):
        get_logger().warning("expected a list of names", got=type(values).__name__)
        return ()
    out: list[str] = []
    for entry in values:
        if isinstance(entry, str):
            out.append(entry)
        elif isinstance(entry, dict) and isinstance(entry.get(attr), str):
            out.append(entry[attr])
    return tuple(out)


@dataclass(frozen=True)
class IssueData:
    id: int
    url: str
    html_url: str = ""
    title: str = ""
    body: str = ""
    state: str = ""
    labels: tuple[str, ...] = ()
    repository_url: str = ""
    assignees: tuple[str, ...] = ()
    # Only set when the issue listing entry is a pull request.
    diff_url: str = ""

    @property
    def is_pull_request(self) -> bool:
        return bool(self.diff_url)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IssueData:
        pull_request = _dict(data, "pull_request") or {}
        url = _str(data, "url")
        return cls(
            id=_int(data, "id"),
            url=url,
            html_url=_str(data, "html_url"),
            title=_str(data, "title"),
            body=_str(data, "body"),
            state=_str(data, "state"),
            labels=_names(data.get("labels")),
            repository_url=_str(data, "repository_url") or (repository_url_from(url) or ""),
            assignees=_names(data.get("assignees"), "login"),
            diff_url=_str(pull_request, "diff_url"),
        )


@dataclass(frozen=True)
class PullRequestData:
    id: int
    url: str
    issue_url: str
    html_url: str = ""
    diff_url: str = ""
    title: str = ""
    body: str = ""
    state: str = ""
    labels: tuple[str, ...] = ()

    @property
    def repository_url(self) -> str | None:
        return repository_url_from(self.issue_url or self.url)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PullRequestData:
        return cls(
            id=_int(data, "id"),
            url=_str(data, "url"),
            issue_url=_str(data, "issue_url"),
            html_url=_str(data, "html_url"),
            diff_url=_str(data, "diff_url"),
            title=_str(data, "title"),
            body=_str(data, "body"),
            state=_str(data, "state"),
            labels=_names(data.get("labels")),
        )


@dataclass(frozen=True)
class ProjectCard:
    column_id: int | None
    content_url: str | None = None
    id: int | None = None
    note: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectCard:
        return cls(
            column_id=_opt_int(data, "column_id"),
            content_url=_opt_str(data, "content_url"),
            id=_opt_int(data, "id"),
            note=_opt_str(data, "note"),
        )


@dataclass(frozen=True)
class Changes:
    column_from: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Changes:
        column = _dict(data or {}, "column_id") or {}
        return cls(column_from=_opt_int(column, "from"))


@dataclass(frozen=True)
class Project:
    name: str
    columns_url: str
    url: str
    id: int | None = None
    state: str = ""
    owner_url: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Project:
        return cls(
            name=_str(data, "name"),
            columns_url=_str(data, "columns_url"),
            url=_str(data, "url"),
            id=_opt_int(data, "id"),
            state=_str(data, "state"),
            owner_url=_str(data, "owner_url"),
        )


@dataclass(frozen=True)
class _EventBase:
    action: str
    installation_id: str
    sender: str | None
    repository_url: str | None


@dataclass(frozen=True)
class PullRequestEvent(_EventBase):
    pull_request: PullRequestData


@dataclass(frozen=True)
class IssueEvent(_EventBase):
    issue: IssueData


@dataclass(frozen=True)
class ProjectCardEvent(_EventBase):
    card: ProjectCard
    changes: Changes


@dataclass(frozen=True)
class ProjectEvent(_EventBase):
    project: Project


WebhookEvent = Union[PullRequestEvent, IssueEvent, ProjectCardEvent, ProjectEvent]


def _installation_id(payload: dict[str, Any]) -> str | None:
    installation = _dict(payload, "installation")
    if installation is None:
        return None
    value = installation.get("id")
    if isinstance(value, bool) or not isinstance(value, (int, str)) or value == "":
        return None
    return str(value)


def _decode(payload: dict[str, Any]) -> WebhookEvent | None:
    installation_id = _installation_id(payload)
    if installation_id is None:
        raise MalformedPayloadError("payload has no installation id")
    sender = _opt_str(_dict(payload, "sender") or {}, "login")
    repository_url = _opt_str(_dict(payload, "repository") or {}, "url")
    base = {
        "action": _str(payload, "action"),
        "installation_id": installation_id,
        "sender": sender,
    }

    pull_request = _dict(payload, "pull_request")
    if pull_request is not None:
        pr = PullRequestData.from_dict(pull_request)
        return PullRequestEvent(
            **base, repository_url=repository_url or pr.repository_url, pull_request=pr
        )
    issue = _dict(payload, "issue")
    if issue is not None:
        data = IssueData.from_dict(issue)
        return IssueEvent(
            **base, repository_url=repository_url or data.repository_url or None, issue=data
        )
    card = _dict(payload, "project_card")
    if card is not None:
        project_card = ProjectCard.from_dict(card)
        return ProjectCardEvent(
            **base,
            repository_url=repository_url or repository_url_from(project_card.content_url),
            card=project_card,
            changes=Changes.from_dict(_dict(payload, "changes")),
        )
    project = _dict(payload, "project")
    if project is not None:
        data_project = Project.from_dict(project)
        return ProjectEvent(
            **base,
            repository_url=repository_url or repository_url_from(data_project.owner_url),
            project=data_project,
        )
    return None


def parse_event(payload: Any) -> WebhookEvent | None:
    """Decode a webhook payload; malformed input yields ``None``."""
    if not isinstance(payload, dict):
        get_logger().warning("webhook payload is not an object")
        return None
    try:
        return _decode(payload)
    except MalformedPayloadError as exc:
        get_logger().warning("couldn't parse incoming webhook payload", error=str(exc))
        return None


__all__ = [
    "Changes",
    "IssueData",
    "IssueEvent",
    "Project",
    "ProjectCard",
    "ProjectCardEvent",
    "ProjectEvent",
    "PullRequestData",
    "PullRequestEvent",
    "WebhookEvent",
    "parse_event",
    "repository_url_from",
]
