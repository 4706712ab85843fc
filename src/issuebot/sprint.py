"""Sprint boards: naming, lookup of the active sprint and the rollover.

A sprint is a repository project named ``YYYY-MM-DD - YYYY-MM-DD``. Closing
one rolls the board into the next two-week window: the closed project is
renamed and reopened as the new sprint, and a fresh closed project keeps the
finished sprint's name as the record.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

from .github_rest import GitHubClient
from .logging import get_logger
from .models import Project, repository_url_from

SPRINT_NAME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2} - \d{4}-\d{2}-\d{2}$")
SPRINT_LENGTH = timedelta(days=14)

BACKLOG = "Backlog"
IN_PROGRESS = "In progress"
DONE = "Done"
STANDARD_COLUMNS = (BACKLOG, IN_PROGRESS, DONE)
CARRIED_COLUMNS = (BACKLOG, IN_PROGRESS)


def is_sprint_name(name: str) -> bool:
    return bool(SPRINT_NAME_PATTERN.match(name))


def format_sprint_name(start: date, end: date) -> str:
    return f"{start.isoformat()} - {end.isoformat()}"


def next_sprint_dates(name: str) -> tuple[date, date] | None:
    """Start and inclusive end of the sprint following ``name``."""
    if not is_sprint_name(name):
        return None
    try:
        end = date.fromisoformat(name.split(" - ")[1])
    except ValueError:
        return None
    start = end + timedelta(days=1)
    return start, start + SPRINT_LENGTH - timedelta(days=1)


def next_sprint_name(name: str) -> str | None:
    dates = next_sprint_dates(name)
    return format_sprint_name(*dates) if dates else None


def find_current_sprint(repo_url: str, client: GitHubClient) -> Project | None:
    """The last listed open project whose name is a sprint range."""
    current: Project | None = None
    for entry in client.list_projects(repo_url):
        project = Project.from_dict(entry)
        if is_sprint_name(project.name):
            current = project
    return current


def find_column(columns: list[dict[str, Any]], name: str) -> dict[str, Any] | None:
    """Last column called ``name``; a rolled-over board lists its fresh columns last."""
    found: dict[str, Any] | None = None
    for column in columns:
        if column.get("name") == name:
            found = column
    return found


def resolve_card_content(content_url: str, client: GitHubClient) -> tuple[int, str] | None:
    """Map an issue URL to the ``(content_id, content_type)`` a card needs."""
    issue = client.get_object(content_url)
    if issue is None:
        return None
    pull_request = issue.get("pull_request")
    if isinstance(pull_request, dict) and isinstance(pull_request.get("url"), str):
        pr = client.get_object(pull_request["url"])
        if pr is None or not isinstance(pr.get("id"), int):
            return None
        return pr["id"], "PullRequest"
    content_id = issue.get("id")
    if not isinstance(content_id, int):
        return None
    return content_id, "Issue"


@dataclass
class RolloverResult:
    closed_name: str
    active_name: str
    active_project_url: str
    archive_project_url: str | None = None
    cards_copied: int = 0
    cards_archived: int = 0
    columns_created: list[str] = field(default_factory=list)


class SprintRollover:
    def __init__(self, client: GitHubClient) -> None:
        self.client = client
        self.logger = get_logger()

    def _snapshot(self, project: Project) -> dict[str, list[dict[str, Any]]]:
        board: dict[str, list[dict[str, Any]]] = {}
        for column in self.client.list_columns(project.columns_url):
            name = column.get("name")
            cards_url = column.get("cards_url")
            if isinstance(name, str) and isinstance(cards_url, str):
                board[name] = self.client.list_cards(cards_url)
        return board

    def _copy_card(self, card: dict[str, Any], cards_url: str) -> bool:
        content_url = card.get("content_url")
        if isinstance(content_url, str) and content_url:
            content = resolve_card_content(content_url, self.client)
            if content is None:
                self.logger.warning("card content could not be resolved", url=content_url)
                return False
            content_id, content_type = content
            created = self.client.create_card(
                cards_url, content_id=content_id, content_type=content_type
            )
        else:
            created = self.client.create_card(cards_url, note=card.get("note") or "")
        return created is not None

    def run(self, project: Project, repo_url: str | None = None) -> RolloverResult | None:
        dates = next_sprint_dates(project.name)
        if dates is None:
            self.logger.info("closed project is not a sprint", project=project.name)
            return None
        repo_url = repo_url or repository_url_from(project.owner_url)
        if not repo_url:
            self.logger.log_error("no repository for closed sprint", project=project.name)
            return None

        closed_name = project.name
        active_name = format_sprint_name(*dates)
        original = self._snapshot(project)

        self.client.update_project(project.url, name=active_name, state="open")
        result = RolloverResult(
            closed_name=closed_name, active_name=active_name, active_project_url=project.url
        )

        archive = self.client.create_project(repo_url, closed_name)
        if archive is not None and isinstance(archive.get("url"), str):
            result.archive_project_url = archive["url"]
            self.client.update_project(archive["url"], name=closed_name, state="closed")
        else:
            self.logger.log_error("could not create sprint archive", project=closed_name)

        new_columns: dict[str, str] = {}
        for name in STANDARD_COLUMNS:
            column = self.client.create_column(project.columns_url, name)
            if column is not None and isinstance(column.get("cards_url"), str):
                new_columns[name] = column["cards_url"]
                result.columns_created.append(name)

        for name in CARRIED_COLUMNS:
            target = new_columns.get(name)
            if target is None:
                continue
            for card in original.get(name, []):
                if self._copy_card(card, target):
                    result.cards_copied += 1

        done_target = new_columns.get(DONE)
        if done_target is not None:
            for card in original.get(DONE, []):
                # Only drop the original once its copy exists.
                if self._copy_card(card, done_target) and card.get("id") is not None:
                    if self.client.delete_card(card["id"]):
                        result.cards_archived += 1

        self.logger.log_operation(
            "sprint_rollover",
            closed_sprint=closed_name,
            active_sprint=active_name,
            cards_copied=result.cards_copied,
            cards_archived=result.cards_archived,
        )
        return result


def on_project_closed(
    project: Project, client: GitHubClient, repo_url: str | None = None
) -> RolloverResult | None:
    return SprintRollover(client).run(project, repo_url)


__all__ = [
    "BACKLOG",
    "DONE",
    "IN_PROGRESS",
    "RolloverResult",
    "SPRINT_NAME_PATTERN",
    "SprintRollover",
    "find_column",
    "find_current_sprint",
    "format_sprint_name",
    "is_sprint_name",
    "next_sprint_dates",
    "next_sprint_name",
    "on_project_closed",
    "resolve_card_content",
]
