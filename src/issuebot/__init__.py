"""issuebot - GitHub App automation for component labels and sprint boards.

High-level public API:

from issuebot import Dispatcher, load_config

with Dispatcher(load_config('issuebot.config.yaml')) as dispatcher:
    dispatcher.handle_payload(payload)               # webhook delivery
    dispatcher.schedule_bulk_update(installation_id, repo_url)

Webhook bodies should be checked with ``verify_signature`` before decoding.
"""

from __future__ import annotations

from .config import BotConfig, load_config
from .dispatch import Dispatcher, route_event, verify_shared_secret, verify_signature
from .github_rest import GitHubClient
from .models import parse_event

__version__ = "0.1.0"

__all__ = [
    "BotConfig",
    "Dispatcher",
    "GitHubClient",
    "load_config",
    "parse_event",
    "route_event",
    "verify_shared_secret",
    "verify_signature",
    "__version__",
]
