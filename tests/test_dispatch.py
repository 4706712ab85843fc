from __future__ import annotations

import hashlib
import hmac
from concurrent.futures import Future
from typing import Any

import pytest
from conftest import RecordingClient, StaticCredentials

from issuebot.config import BotConfig
from issuebot.dispatch import Dispatcher, route_event, verify_shared_secret, verify_signature
from issuebot.models import (
    Changes,
    IssueData,
    IssueEvent,
    Project,
    ProjectCard,
    ProjectCardEvent,
    ProjectEvent,
    PullRequestData,
    PullRequestEvent,
)
from issuebot.registry import InstallationRegistry

REPO = "https://api.github.com/repos/acme/widgets"
SECRET = "s3cret"


class RecordingReconciler:
    def __init__(self) -> None:
        self.calls: list[str] = []

    def reconcile_issue(self, issue: Any, client: Any) -> None:
        self.calls.append("issue")

    def reconcile_pull_request(self, pr: Any, client: Any) -> None:
        self.calls.append("pr")

    def add_needs_review_label(self, issue: Any, client: Any) -> bool:
        self.calls.append("needs_review")
        return True

    def reconcile_all_issues(self, repo_url: str, client: Any) -> int:
        self.calls.append("bulk")
        return 3


def _pr_event(action: str) -> PullRequestEvent:
    return PullRequestEvent(
        action=action,
        installation_id="42",
        sender="octocat",
        repository_url=REPO,
        pull_request=PullRequestData(id=2, url=f"{REPO}/pulls/2", issue_url=f"{REPO}/issues/2"),
    )


def _issue_event(action: str, labels: tuple[str, ...] = ()) -> IssueEvent:
    return IssueEvent(
        action=action,
        installation_id="42",
        sender="octocat",
        repository_url=REPO,
        issue=IssueData(id=1, url=f"{REPO}/issues/1", labels=labels, repository_url=REPO),
    )


def _sign(body: bytes, secret: str = SECRET) -> str:
    return "sha1=" + hmac.new(secret.encode(), body, hashlib.sha1).hexdigest()


def test_verify_signature():
    body = b'{"action":"opened"}'
    assert verify_signature(body, _sign(body), SECRET) is True
    assert verify_signature(body, _sign(body, "other"), SECRET) is False
    assert verify_signature(body + b" ", _sign(body), SECRET) is False
    assert verify_signature(body, None, SECRET) is False
    assert verify_signature(body, _sign(body), None) is False
    assert verify_signature(body, _sign(body).replace("sha1=", "sha256="), SECRET) is False


def test_verify_shared_secret():
    assert verify_shared_secret(f"Bearer {SECRET}", SECRET) is True
    assert verify_shared_secret(f"Basic {SECRET}", SECRET) is True
    assert verify_shared_secret("Bearer nope", SECRET) is False
    assert verify_shared_secret(f"Token {SECRET}", SECRET) is False
    assert verify_shared_secret(None, SECRET) is False
    assert verify_shared_secret(f"Bearer {SECRET}", None) is False


@pytest.mark.parametrize(
    ("action", "expected", "reconciled"),
    [
        ("opened", ["reconcile_pull_request", "add_to_sprint"], ["pr"]),
        ("synchronize", ["reconcile_pull_request"], ["pr"]),
        ("reopened", ["add_to_sprint"], []),
        ("closed", [], []),
    ],
)
def test_pull_request_routing(action, expected, reconciled):
    reconciler = RecordingReconciler()
    handled = route_event(_pr_event(action), RecordingClient(), BotConfig(), reconciler)  # type: ignore[arg-type]
    assert handled == expected
    assert reconciler.calls == reconciled


def test_opened_issue_is_reconciled_and_flagged():
    reconciler = RecordingReconciler()
    handled = route_event(_issue_event("opened"), RecordingClient(), BotConfig(), reconciler)  # type: ignore[arg-type]
    assert handled == ["reconcile_issue", "needs_review"]
    assert reconciler.calls == ["issue", "needs_review"]


def test_client_blocking_issue_goes_to_sprint():
    reconciler = RecordingReconciler()
    handled = route_event(
        _issue_event("labeled", ("Client-blocking",)), RecordingClient(), BotConfig(), reconciler  # type: ignore[arg-type]
    )
    assert handled == ["add_to_sprint"]
    assert reconciler.calls == []


def test_labeled_issue_without_blocking_label_is_ignored():
    handled = route_event(
        _issue_event("labeled", ("bug",)), RecordingClient(), BotConfig(), RecordingReconciler()  # type: ignore[arg-type]
    )
    assert handled == []


def test_card_and_project_routing():
    card = ProjectCardEvent(
        action="moved",
        installation_id="42",
        sender=None,
        repository_url=REPO,
        card=ProjectCard(column_id=2),
        changes=Changes(column_from=1),
    )
    project = ProjectEvent(
        action="closed",
        installation_id="42",
        sender=None,
        repository_url=REPO,
        project=Project(name="Roadmap", columns_url="c", url="u"),
    )
    client = RecordingClient()
    assert route_event(card, client, BotConfig()) == ["card_moved"]  # type: ignore[arg-type]
    assert route_event(project, client, BotConfig()) == ["project_closed"]  # type: ignore[arg-type]
    reopened = ProjectEvent(
        action="reopened",
        installation_id="42",
        sender=None,
        repository_url=REPO,
        project=project.project,
    )
    assert route_event(reopened, client, BotConfig()) == []  # type: ignore[arg-type]


@pytest.fixture
def dispatcher():
    client = RecordingClient()
    registry = InstallationRegistry(lambda _id: client)  # type: ignore[arg-type,return-value]
    with Dispatcher(
        BotConfig(max_workers=2), credentials=StaticCredentials(), registry=registry  # type: ignore[arg-type]
    ) as d:
        d.reconciler = RecordingReconciler()  # type: ignore[assignment]
        yield d


def test_handle_payload_routes_through_registry(dispatcher):
    payload = {
        "action": "opened",
        "installation": {"id": 42},
        "repository": {"url": REPO},
        "issue": {"id": 1, "url": f"{REPO}/issues/1", "title": "[Button] x"},
    }
    assert dispatcher.handle_payload(payload) == ["reconcile_issue", "needs_review"]
    assert "42" in dispatcher.registry


def test_handle_payload_ignores_garbage(dispatcher):
    assert dispatcher.handle_payload("not json") == []
    assert dispatcher.handle_payload({"action": "opened"}) == []
    assert len(dispatcher.registry) == 0


def test_schedule_bulk_update_returns_future(dispatcher):
    future = dispatcher.schedule_bulk_update("42", REPO)
    assert isinstance(future, Future)
    assert future.result(timeout=5) == 3
    assert dispatcher.reconciler.calls == ["bulk"]


def test_bulk_failure_is_kept_on_the_future(dispatcher):
    def boom(repo_url: str, client: Any) -> int:
        raise RuntimeError("boom")

    dispatcher.reconciler.reconcile_all_issues = boom
    future = dispatcher.schedule_bulk_update("42", REPO)
    assert isinstance(future.exception(timeout=5), RuntimeError)
