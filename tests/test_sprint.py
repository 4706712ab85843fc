from __future__ import annotations

from datetime import date

from conftest import RecordingClient

from issuebot.models import Project
from issuebot.sprint import (
    is_sprint_name,
    next_sprint_dates,
    next_sprint_name,
    on_project_closed,
)

REPO = "https://api.github.com/repos/acme/widgets"
CLOSED = "2018-06-05 - 2018-06-18"
NEXT = "2018-06-19 - 2018-07-02"
PROJECT_URL = "https://api.github.com/projects/1"
COLUMNS_URL = f"{PROJECT_URL}/columns"


def _project(name: str = CLOSED) -> Project:
    return Project(name=name, columns_url=COLUMNS_URL, url=PROJECT_URL, owner_url=REPO)


def _client(done_content: str = f"{REPO}/issues/3") -> RecordingClient:
    return RecordingClient(
        columns={
            COLUMNS_URL: [
                {"name": "Backlog", "cards_url": "old-backlog"},
                {"name": "In progress", "cards_url": "old-progress"},
                {"name": "Done", "cards_url": "old-done"},
            ]
        },
        cards={
            "old-backlog": [{"id": 1, "content_url": f"{REPO}/issues/1"}],
            "old-progress": [{"id": 2, "note": "write docs"}],
            "old-done": [{"id": 3, "content_url": done_content}],
        },
        objects={f"{REPO}/issues/1": {"id": 11}, f"{REPO}/issues/3": {"id": 13}},
    )


def test_sprint_names():
    assert is_sprint_name(CLOSED)
    assert not is_sprint_name("Roadmap")
    assert not is_sprint_name("2018-06-05 to 2018-06-18")
    assert not is_sprint_name(f"{CLOSED} extra")


def test_next_sprint_is_two_weeks_after_end():
    assert next_sprint_name(CLOSED) == NEXT
    assert next_sprint_dates(CLOSED) == (date(2018, 6, 19), date(2018, 7, 2))
    assert next_sprint_name("2018-12-20 - 2018-12-31") == "2019-01-01 - 2019-01-14"


def test_invalid_dates_are_not_rolled():
    assert next_sprint_name("2018-13-01 - 2018-13-14") is None
    assert next_sprint_name("Roadmap") is None


def test_rollover_reopens_and_archives():
    client = _client()
    result = on_project_closed(_project(), client)

    assert result is not None
    assert result.active_name == NEXT
    updates = client.calls_to("update_project")
    reopened = [u for u in updates if u[1].get("state") == "open"]
    archived = [u for u in updates if u[1].get("state") == "closed"]
    assert reopened == [((PROJECT_URL,), {"name": NEXT, "state": "open"})]
    assert len(archived) == 1
    assert archived[0][1]["name"] == CLOSED
    assert client.calls_to("create_project") == [((REPO, CLOSED), {})]
    assert result.archive_project_url == archived[0][0][0]


def test_rollover_rebuilds_columns_and_carries_cards():
    client = _client()
    result = on_project_closed(_project(), client)

    assert [c[0][1] for c in client.calls_to("create_column")] == ["Backlog", "In progress", "Done"]
    assert all(c[0][0] == COLUMNS_URL for c in client.calls_to("create_column"))
    assert client.calls_to("create_card") == [
        (("new-cards/Backlog",), {"content_id": 11, "content_type": "Issue"}),
        (("new-cards/In progress",), {"note": "write docs"}),
        (("new-cards/Done",), {"content_id": 13, "content_type": "Issue"}),
    ]
    assert client.calls_to("delete_card") == [((3,), {})]
    assert result is not None
    assert result.cards_copied == 2
    assert result.cards_archived == 1


def test_done_card_kept_when_copy_fails():
    client = _client(done_content=f"{REPO}/issues/404")
    result = on_project_closed(_project(), client)
    assert client.calls_to("delete_card") == []
    assert result is not None
    assert result.cards_archived == 0


def test_closing_a_non_sprint_project_is_a_no_op():
    client = _client()
    assert on_project_closed(_project("Roadmap"), client) is None
    assert client.calls == []
