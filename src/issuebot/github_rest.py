from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping
from typing import Any

import requests

from .config import DEFAULT_API_URL, DEFAULT_USER_AGENT
from .errors import AuthError, MalformedPayloadError, TransportError, classify_error
from .github_auth import MACHINE_MAN_PREVIEW, CredentialManager
from .logging import get_logger
from .middleware import (
    ApiRequest,
    Throttle,
    audited,
    compose,
    session_executor,
    throttled,
    with_headers,
)
from .retry import RetryConfig, retry_until

INERTIA_PREVIEW = "application/vnd.github.inertia-preview+json"
DIFF_MEDIA_TYPE = "application/vnd.github.v3.diff"
UNAUTHORIZED_STATUSES = frozenset({401, 403})
HTTP_ERROR_STATUS = 400


class GitHubClient:
    """Rate-limited REST client bound to one App installation.

    Every call goes through the throttle, carries the installation token and
    is replayed once after a credential refresh when GitHub answers 401/403.
    Failures are logged and surface as ``None`` / empty results; no public
    method raises.
    """

    def __init__(
        self,
        installation_id: str,
        credentials: CredentialManager,
        *,
        session: requests.Session | None = None,
        api_url: str = DEFAULT_API_URL,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 30.0,
        throttle_interval: float = 1.0,
        retry_config: RetryConfig | None = None,
        token: str | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.installation_id = installation_id
        self.api_url = api_url.rstrip("/")
        self.user_agent = user_agent
        self.logger = get_logger()
        self._credentials = credentials
        self._session = session or requests.Session()
        self._retry_config = retry_config
        # Guards both the token and the throttle timestamp.
        self._lock = threading.RLock()
        self._token = token
        # Token each thread last put on the wire.
        self._sent = threading.local()
        self.refresh_count = 0
        self.throttle = Throttle(throttle_interval, lock=self._lock, clock=clock, sleep=sleep)
        self._pipeline = compose(
            session_executor(self._session, timeout),
            [throttled(self.throttle), with_headers(self._standard_headers), audited(self.logger)],
        )

    # ---- credentials --------------------------------------------------
    @property
    def access_token(self) -> str | None:
        with self._lock:
            return self._token

    def _standard_headers(self, request: ApiRequest) -> dict[str, str]:
        with self._lock:
            token = self._token
        self._sent.token = token
        return {
            "Authorization": f"token {token}",
            "Accept": request.accept,
            "User-Agent": self.user_agent,
        }

    def _refresh_once(self) -> bool:
        try:
            access = self._credentials.obtain_access_token(self.installation_id)
        except AuthError:
            return False
        self._token = access.token
        return True

    def refresh_credentials(self, stale_token: str | None = None) -> bool:
        """Replace the token unless another thread already did.

        ``stale_token`` is the token the failing request carried; if the
        current token differs, someone refreshed meanwhile and we reuse it.
        """
        with self._lock:
            if self._token is not None and self._token != stale_token:
                return True
            self.refresh_count += 1
            refreshed = retry_until(self._refresh_once, cfg=self._retry_config)
        if refreshed:
            self.logger.debug("Refreshed GitHub credentials", installation_id=self.installation_id)
        else:
            self.logger.log_error(
                "Could not refresh GitHub credentials", installation_id=self.installation_id
            )
        return refreshed

    # ---- request execution -------------------------------------------
    def _send(self, request: ApiRequest) -> requests.Response | None:
        if self.access_token is None and not self.refresh_credentials(None):
            return None
        for attempt in range(2):
            self._sent.token = None
            try:
                response = self._pipeline(request)
            except requests.RequestException as exc:
                info = classify_error(TransportError(str(exc)))
                self.logger.log_error(
                    f"{request.method} {request.url} failed",
                    error=info.message,
                    category=info.category,
                    installation_id=self.installation_id,
                )
                return None
            if response.status_code not in UNAUTHORIZED_STATUSES:
                return response
            if attempt == 0 and self.refresh_credentials(self._sent.token):
                continue
            break
        self.logger.log_error(
            f"{request.method} {request.url} still unauthorized, giving up",
            installation_id=self.installation_id,
        )
        return None

    def _decode(self, request: ApiRequest, response: requests.Response | None) -> Any:
        if response is None:
            return None
        if response.status_code >= HTTP_ERROR_STATUS:
            self.logger.log_error(
                f"GitHub API {request.method} {request.url} failed with {response.status_code}",
                status=response.status_code,
                installation_id=self.installation_id,
            )
            return None
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            info = classify_error(MalformedPayloadError(str(exc)))
            self.logger.log_error(
                f"Unparseable response from {request.url}",
                error=info.message,
                category=info.category,
            )
            return None

    def _request(
        self,
        method: str,
        url: str,
        *,
        accept: str = MACHINE_MAN_PREVIEW,
        params: Mapping[str, Any] | None = None,
        json_body: Any | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        request = ApiRequest(
            method=method,
            url=self._absolute(url),
            accept=accept,
            params=params,
            json_body=json_body,
            headers=dict(headers or {}),
        )
        return self._decode(request, self._send(request))

    def _paginate(
        self,
        url: str,
        *,
        accept: str = MACHINE_MAN_PREVIEW,
        params: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        next_url: str | None = self._absolute(url)
        page_params: Mapping[str, Any] | None = params
        while next_url:
            request = ApiRequest(method="GET", url=next_url, accept=accept, params=page_params)
            response = self._send(request)
            data = self._decode(request, response)
            if not isinstance(data, list):
                break
            results.extend(entry for entry in data if isinstance(entry, dict))
            # The next link already carries the query string.
            page_params = None
            next_url = (response.links.get("next") or {}).get("url") if response else None
        return results

    def _absolute(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.api_url}/{path.lstrip('/')}"

    # ---- generic fetches ---------------------------------------------
    def get_object(self, url: str, *, accept: str = MACHINE_MAN_PREVIEW) -> dict[str, Any] | None:
        data = self._request("GET", url, accept=accept)
        return data if isinstance(data, dict) else None

    def get_text(self, url: str, *, accept: str = DIFF_MEDIA_TYPE) -> str | None:
        """Fetch a non-JSON body such as a pull request diff."""
        request = ApiRequest(method="GET", url=self._absolute(url), accept=accept)
        response = self._send(request)
        if response is None:
            return None
        if response.status_code >= HTTP_ERROR_STATUS:
            self.logger.log_error(
                f"GitHub GET {url} failed with {response.status_code}",
                status=response.status_code,
            )
            return None
        return response.text

    # ---- issue operations --------------------------------------------
    def add_labels(self, issue_url: str, labels: Iterable[str]) -> list[str]:
        unique = list(dict.fromkeys(labels))
        if not unique:
            return []
        data = self._request("POST", f"{issue_url}/labels", json_body=unique)
        self.logger.log_operation("labels_added", url=issue_url, labels=unique)
        if not isinstance(data, list):
            return []
        return [str(entry["name"]) for entry in data if isinstance(entry, dict) and "name" in entry]

    def create_comment(self, issue_url: str, body: str) -> dict[str, Any] | None:
        data = self._request("POST", f"{issue_url}/comments", json_body={"body": body})
        self.logger.log_operation("comment_created", url=issue_url)
        return data if isinstance(data, dict) else None

    def edit_issue(self, issue_url: str, **fields: Any) -> dict[str, Any] | None:
        """PATCH an issue or pull request (title, state, assignees, ...)."""
        if not fields:
            return None
        data = self._request("PATCH", issue_url, json_body=fields)
        self.logger.log_operation("issue_edited", url=issue_url, fields=sorted(fields))
        return data if isinstance(data, dict) else None

    def list_issues(self, repo_url: str, *, state: str = "all") -> list[dict[str, Any]]:
        return self._paginate(f"{repo_url}/issues", params={"state": state, "per_page": 100})

    def get_directory_names(self, repo_url: str, relative_path: str) -> list[str]:
        entries = self._paginate(f"{repo_url}/contents/{relative_path.strip('/')}")
        names: list[str] = []
        for entry in entries:
            name = entry.get("name")
            if isinstance(name, str) and entry.get("type", "dir") == "dir":
                names.append(name)
        return names

    # ---- project operations ------------------------------------------
    def list_projects(self, repo_url: str, *, state: str = "open") -> list[dict[str, Any]]:
        return self._paginate(
            f"{repo_url}/projects", accept=INERTIA_PREVIEW, params={"state": state, "per_page": 100}
        )

    def create_project(
        self, repo_url: str, name: str, body: str | None = None
    ) -> dict[str, Any] | None:
        payload: dict[str, Any] = {"name": name}
        if body is not None:
            payload["body"] = body
        data = self._request("POST", f"{repo_url}/projects", accept=INERTIA_PREVIEW, json_body=payload)
        self.logger.log_operation("project_created", url=repo_url, project_name=name)
        return data if isinstance(data, dict) else None

    def update_project(
        self, project_url: str, *, name: str | None = None, state: str | None = None
    ) -> dict[str, Any] | None:
        payload: dict[str, Any] = {}
        if name is not None:
            payload["name"] = name
        if state is not None:
            payload["state"] = state
        if not payload:
            return None
        data = self._request("PATCH", project_url, accept=INERTIA_PREVIEW, json_body=payload)
        self.logger.log_operation("project_updated", url=project_url, changes=sorted(payload))
        return data if isinstance(data, dict) else None

    def get_column(self, column_id: int | str) -> dict[str, Any] | None:
        return self.get_object(f"/projects/columns/{column_id}", accept=INERTIA_PREVIEW)

    def get_column_name(self, column_id: int | str) -> str | None:
        column = self.get_column(column_id)
        name = column.get("name") if column else None
        return name if isinstance(name, str) else None

    def list_columns(self, columns_url: str) -> list[dict[str, Any]]:
        return self._paginate(columns_url, accept=INERTIA_PREVIEW)

    def create_column(self, columns_url: str, name: str) -> dict[str, Any] | None:
        data = self._request("POST", columns_url, accept=INERTIA_PREVIEW, json_body={"name": name})
        return data if isinstance(data, dict) else None

    def list_cards(self, cards_url: str) -> list[dict[str, Any]]:
        return self._paginate(cards_url, accept=INERTIA_PREVIEW)

    def create_card(
        self,
        cards_url: str,
        *,
        content_id: int | None = None,
        content_type: str | None = None,
        note: str | None = None,
    ) -> dict[str, Any] | None:
        if content_id is not None and content_type:
            payload: dict[str, Any] = {"content_id": content_id, "content_type": content_type}
        else:
            payload = {"note": note or ""}
        data = self._request("POST", cards_url, accept=INERTIA_PREVIEW, json_body=payload)
        return data if isinstance(data, dict) else None

    def delete_card(self, card_id: int | str) -> bool:
        request = ApiRequest(
            method="DELETE",
            url=self._absolute(f"/projects/columns/cards/{card_id}"),
            accept=INERTIA_PREVIEW,
        )
        response = self._send(request)
        if response is None or response.status_code >= HTTP_ERROR_STATUS:
            self.logger.log_error("Failed to delete project card", card_id=card_id)
            return False
        return True


__all__ = [
    "DIFF_MEDIA_TYPE",
    "GitHubClient",
    "INERTIA_PREVIEW",
]
