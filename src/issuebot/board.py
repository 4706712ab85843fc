"""Project board automation: side effects of moving a card between columns."""

from __future__ import annotations

from .github_rest import GitHubClient
from .logging import get_logger
from .models import ProjectCardEvent, repository_url_from
from .sprint import (
    BACKLOG,
    DONE,
    IN_PROGRESS,
    find_column,
    find_current_sprint,
    resolve_card_content,
)


def add_to_current_sprint(
    content_url: str, repo_url: str, client: GitHubClient, column_name: str = BACKLOG
) -> bool:
    """Put an issue or pull request on the active sprint board.

    Returns ``True`` only when a card was created; an item already present in
    the target column is left alone.
    """
    logger = get_logger()
    sprint = find_current_sprint(repo_url, client)
    if sprint is None:
        logger.info("no active sprint project", url=repo_url)
        return False
    column = find_column(client.list_columns(sprint.columns_url), column_name)
    cards_url = column.get("cards_url") if column else None
    if not isinstance(cards_url, str):
        logger.info("sprint has no such column", column=column_name, project=sprint.name)
        return False
    if any(card.get("content_url") == content_url for card in client.list_cards(cards_url)):
        return False
    content = resolve_card_content(content_url, client)
    if content is None:
        return False
    content_id, content_type = content
    created = client.create_card(cards_url, content_id=content_id, content_type=content_type)
    if created is not None:
        logger.log_operation(
            "added_to_sprint", url=content_url, project=sprint.name, column=column_name
        )
    return created is not None


def on_card_moved(event: ProjectCardEvent, client: GitHubClient) -> list[str]:
    """Apply every column-transition rule that matches; return the ones applied."""
    logger = get_logger()
    from_id = event.changes.column_from
    to_id = event.card.column_id
    from_name = client.get_column_name(from_id) if from_id is not None else None
    to_name = client.get_column_name(to_id) if to_id is not None else None
    if from_name is None or to_name is None:
        logger.log_error("Couldn't fetch the column ids or column names")
        return []
    content_url = event.card.content_url
    if content_url is None:
        logger.info("The moved card isn't an issue, won't do any action to it.")
        return []

    applied: list[str] = []
    if event.sender and from_name == BACKLOG and to_name in (IN_PROGRESS, DONE):
        issue = client.get_object(content_url)
        if issue is not None and not issue.get("assignees"):
            client.edit_issue(content_url, assignees=[event.sender])
            applied.append("assign")

    if to_name == IN_PROGRESS:
        repo_url = event.repository_url or repository_url_from(content_url)
        if repo_url and add_to_current_sprint(
            content_url, repo_url, client, column_name=IN_PROGRESS
        ):
            applied.append("sprint")

    if to_name == DONE:
        client.edit_issue(content_url, state="closed")
        applied.append("close")

    if from_name == DONE and to_name in (BACKLOG, IN_PROGRESS):
        client.edit_issue(content_url, state="open")
        applied.append("reopen")

    logger.log_operation("card_moved", url=content_url, moved_from=from_name, moved_to=to_name)
    return applied


__all__ = ["add_to_current_sprint", "on_card_moved"]
