"""Pytest configuration for issuebot tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install, and provides the fakes most tests share:
a scripted `requests`-like session and a recording GitHub client.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        *,
        text: str | None = None,
        next_url: str | None = None,
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        if text is not None:
            self.text = text
        elif payload is not None:
            self.text = json.dumps(payload)
        else:
            self.text = ""
        self.content = self.text.encode("utf-8")
        self.links: dict[str, dict[str, str]] = (
            {"next": {"url": next_url, "rel": "next"}} if next_url else {}
        )

    def json(self) -> Any:
        if self._payload is None:
            return json.loads(self.text)
        return self._payload


class FakeSession:
    """Replays scripted responses and records every call."""

    def __init__(self, responses: Iterable[Any] = ()) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def _next(self) -> Any:
        if not self.responses:
            return FakeResponse(200, {})
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        self.calls.append({"method": method, "url": url, **kwargs})
        return self._next()

    def post(self, url: str, **kwargs: Any) -> Any:
        self.calls.append({"method": "POST", "url": url, **kwargs})
        return self._next()


class StaticCredentials:
    """Stands in for CredentialManager; hands out tokens from a script."""

    def __init__(self, tokens: Iterable[Any] = ("tok-1", "tok-2", "tok-3")) -> None:
        self.tokens = list(tokens)
        self.calls = 0

    def obtain_access_token(self, installation_id: str) -> Any:
        from issuebot.errors import AuthError
        from issuebot.github_auth import AccessToken

        self.calls += 1
        if not self.tokens:
            raise AuthError("no more tokens")
        token = self.tokens.pop(0)
        if isinstance(token, BaseException):
            raise token
        return AccessToken(token=token)


class RecordingClient:
    """GitHubClient double: canned reads, recorded writes."""

    def __init__(
        self,
        *,
        objects: dict[str, dict[str, Any]] | None = None,
        texts: dict[str, str] | None = None,
        directories: list[str] | None = None,
        projects: list[dict[str, Any]] | None = None,
        columns: dict[str, list[dict[str, Any]]] | None = None,
        cards: dict[str, list[dict[str, Any]]] | None = None,
        column_names: dict[int, str] | None = None,
        issues: list[dict[str, Any]] | None = None,
    ) -> None:
        self.objects = objects or {}
        self.texts = texts or {}
        self.directories = directories or []
        self.projects = projects or []
        self.columns = columns or {}
        self.cards = cards or {}
        self.column_names = column_names or {}
        self.issues = issues or []
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        self._ids = 1000

    def _record(self, name: str, /, *args: Any, **kwargs: Any) -> None:
        self.calls.append((name, args, kwargs))

    def calls_to(self, name: str) -> list[tuple[tuple[Any, ...], dict[str, Any]]]:
        return [(args, kwargs) for call, args, kwargs in self.calls if call == name]

    # reads
    def get_object(self, url: str, **_: Any) -> dict[str, Any] | None:
        return self.objects.get(url)

    def get_text(self, url: str, **_: Any) -> str | None:
        return self.texts.get(url)

    def get_directory_names(self, repo_url: str, relative_path: str) -> list[str]:
        return list(self.directories)

    def list_issues(self, repo_url: str, *, state: str = "all") -> list[dict[str, Any]]:
        return list(self.issues)

    def list_projects(self, repo_url: str, *, state: str = "open") -> list[dict[str, Any]]:
        return list(self.projects)

    def list_columns(self, columns_url: str) -> list[dict[str, Any]]:
        return list(self.columns.get(columns_url, []))

    def list_cards(self, cards_url: str) -> list[dict[str, Any]]:
        return list(self.cards.get(cards_url, []))

    def get_column_name(self, column_id: int | str) -> str | None:
        return self.column_names.get(int(column_id))

    # writes
    def add_labels(self, issue_url: str, labels: Iterable[str]) -> list[str]:
        labels = list(labels)
        self._record("add_labels", issue_url, labels)
        return labels

    def create_comment(self, issue_url: str, body: str) -> dict[str, Any]:
        self._record("create_comment", issue_url, body)
        return {"body": body}

    def edit_issue(self, issue_url: str, **fields: Any) -> dict[str, Any]:
        self._record("edit_issue", issue_url, **fields)
        return dict(fields)

    def create_project(self, repo_url: str, name: str, body: str | None = None) -> dict[str, Any]:
        self._record("create_project", repo_url, name)
        self._ids += 1
        return {"id": self._ids, "name": name, "url": f"{repo_url}/projects/{self._ids}"}

    def update_project(self, project_url: str, **fields: Any) -> dict[str, Any]:
        self._record("update_project", project_url, **fields)
        return {"url": project_url, **fields}

    def create_column(self, columns_url: str, name: str) -> dict[str, Any]:
        self._record("create_column", columns_url, name)
        self._ids += 1
        return {"id": self._ids, "name": name, "cards_url": f"new-cards/{name}"}

    def create_card(self, cards_url: str, **fields: Any) -> dict[str, Any]:
        self._record("create_card", cards_url, **fields)
        self._ids += 1
        return {"id": self._ids, **fields}

    def delete_card(self, card_id: int | str) -> bool:
        self._record("delete_card", card_id)
        return True


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    """Cap the auth-refresh backoff at zero seconds."""
    monkeypatch.setenv("ISSUEBOT_RETRY_MAX_SLEEP", "0")


@pytest.fixture(autouse=True)
def _fresh_logger(monkeypatch: pytest.MonkeyPatch) -> None:
    """Bind the process-wide logger to the stdout of the running test."""
    import issuebot.logging as logging_mod

    monkeypatch.setattr(logging_mod, "_GLOBAL", None)
