"""Entry points the HTTP front end calls.

The web server itself lives elsewhere; it hands us raw bodies, headers and
decoded payloads. Webhook events are processed synchronously on the calling
worker. Bulk relabelling is submitted to a thread pool so the request that
triggered it can return straight away.
"""

from __future__ import annotations

import hashlib
import hmac
from concurrent.futures import Future, ThreadPoolExecutor
from types import TracebackType
from typing import Any

from .board import add_to_current_sprint, on_card_moved
from .config import BotConfig
from .github_auth import CredentialManager, create_credential_manager
from .github_rest import GitHubClient
from .labels import LabelReconciler
from .logging import get_logger
from .models import (
    IssueEvent,
    ProjectCardEvent,
    ProjectEvent,
    PullRequestEvent,
    WebhookEvent,
    parse_event,
)
from .registry import InstallationRegistry
from .sprint import on_project_closed

SIGNATURE_PREFIX = "sha1="


def verify_signature(body: bytes, signature_header: str | None, secret: str | None) -> bool:
    """Check an ``X-Hub-Signature: sha1=<hex>`` header against the raw body."""
    if not secret or not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
        return False
    computed = hmac.new(secret.encode("utf-8"), body, hashlib.sha1).hexdigest()
    return hmac.compare_digest(computed, signature_header[len(SIGNATURE_PREFIX) :])


def verify_shared_secret(authorization: str | None, secret: str | None) -> bool:
    """Static credential check for the bulk endpoint (``Bearer``/``Basic`` <secret>)."""
    if not secret or not authorization:
        return False
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() not in ("bearer", "basic"):
        return False
    return hmac.compare_digest(value.strip().encode("utf-8"), secret.encode("utf-8"))


def route_event(
    event: WebhookEvent,
    client: GitHubClient,
    config: BotConfig,
    reconciler: LabelReconciler | None = None,
) -> list[str]:
    """Run every automation that applies to ``event``; return what ran."""
    if reconciler is None:
        reconciler = LabelReconciler(config.components_path, config.review_label)
    handled: list[str] = []
    action = event.action
    if isinstance(event, PullRequestEvent):
        pr = event.pull_request
        if action in ("opened", "synchronize"):
            reconciler.reconcile_pull_request(pr, client)
            handled.append("reconcile_pull_request")
        if action in ("opened", "reopened") and event.repository_url and pr.issue_url:
            add_to_current_sprint(pr.issue_url, event.repository_url, client)
            handled.append("add_to_sprint")
    elif isinstance(event, IssueEvent):
        issue = event.issue
        if action == "opened":
            reconciler.reconcile_issue(issue, client)
            reconciler.add_needs_review_label(issue, client)
            handled.extend(["reconcile_issue", "needs_review"])
        if (
            action in ("opened", "labeled")
            and config.client_blocking_label in issue.labels
            and event.repository_url
        ):
            add_to_current_sprint(issue.url, event.repository_url, client)
            handled.append("add_to_sprint")
    elif isinstance(event, ProjectCardEvent):
        if action == "moved":
            on_card_moved(event, client)
            handled.append("card_moved")
    elif isinstance(event, ProjectEvent):
        if action == "closed":
            on_project_closed(event.project, client, event.repository_url)
            handled.append("project_closed")

    if not handled:
        get_logger().debug("no automation for event", action=action, kind=type(event).__name__)
    return handled


class Dispatcher:
    """Owns the installation registry and the background worker pool."""

    def __init__(
        self,
        config: BotConfig,
        *,
        credentials: CredentialManager | None = None,
        registry: InstallationRegistry | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.config = config
        self.logger = get_logger()
        self.credentials = credentials or create_credential_manager(config)
        self.registry = registry or InstallationRegistry(self._create_client)
        self.reconciler = LabelReconciler(config.components_path, config.review_label)
        self._executor = executor or ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="issuebot"
        )

    def __enter__(self) -> Dispatcher:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.shutdown(wait=True)

    def _create_client(self, installation_id: str) -> GitHubClient:
        return GitHubClient(
            installation_id,
            self.credentials,
            api_url=self.config.api_url,
            user_agent=self.config.user_agent,
            timeout=self.config.timeout,
            throttle_interval=self.config.throttle_interval,
        )

    def handle_event(self, event: WebhookEvent) -> list[str]:
        client = self.registry.get_client(event.installation_id)
        return route_event(event, client, self.config, self.reconciler)

    def handle_payload(self, payload: Any) -> list[str]:
        event = parse_event(payload)
        if event is None:
            return []
        return self.handle_event(event)

    def _bulk_update(self, installation_id: str, repo_url: str) -> int:
        client = self.registry.get_client(installation_id)
        try:
            return self.reconciler.reconcile_all_issues(repo_url, client)
        except Exception as exc:
            self.logger.log_error(
                "bulk label update failed", error=str(exc), installation_id=installation_id
            )
            raise

    def schedule_bulk_update(self, installation_id: str, repo_url: str) -> Future[int]:
        """Start a detached bulk relabel; the returned future is informational."""
        self.logger.log_operation(
            "bulk_label_update_scheduled", installation_id=installation_id, url=repo_url
        )
        return self._executor.submit(self._bulk_update, str(installation_id), repo_url)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


__all__ = [
    "Dispatcher",
    "route_event",
    "verify_shared_secret",
    "verify_signature",
]
