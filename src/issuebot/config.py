from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

import yaml
from dotenv import load_dotenv

from .errors import ConfigError

DEFAULT_API_URL = 'https://api.github.com'
DEFAULT_USER_AGENT = 'issuebot'
DEFAULT_DOTENV_LOCATIONS = ('.env', '.env.local')


@dataclass
class BotConfig:
    # GitHub App configuration
    api_url: str = DEFAULT_API_URL
    app_id: str | None = None
    private_key_path: str | None = None
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 30.0
    # Automation behaviour
    components_path: str = 'components'
    review_label: str = 'Needs actionability review'
    client_blocking_label: str = 'Client-blocking'
    throttle_interval: float = 1.0
    # Inbound authentication
    webhook_secret: str | None = None
    shared_secret: str | None = None
    # Logging configuration
    logging_json_enabled: bool = False
    logging_level: str = 'INFO'
    # Concurrency configuration
    max_workers: int = 4
    source_file: Path | None = field(default=None, repr=False)


def _resolve_env_var(value: Any, env_var_name: str | None = None) -> Any:
    """Resolve environment variable if value starts with $."""
    if isinstance(value, str) and value.startswith('$'):
        env_name = env_var_name or value[1:]
        return os.getenv(env_name, value)
    return value


def load_env_file(dotenv_path: str | None = None) -> bool:
    """Load a .env file into the process environment; existing vars win."""
    candidates = [dotenv_path] if dotenv_path else list(DEFAULT_DOTENV_LOCATIONS)
    for location in candidates:
        if location and Path(location).exists():
            load_dotenv(location, override=False)
            return True
    return False


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding='utf-8'))
    except yaml.YAMLError as exc:
        raise ConfigError(f'Invalid configuration file {path}: {exc}') from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f'Configuration root must be a mapping: {path}')
    return cast(dict[str, Any], raw)


def load_config(
    path: str | Path | None = None, *, dotenv_path: str | None = None, use_dotenv: bool = True
) -> BotConfig:
    """Build a :class:`BotConfig` from an optional YAML file plus the environment.

    Explicit YAML values take precedence; ``$NAME`` values are looked up in
    the environment; unset credentials fall back to ``GITHUB_APP_ID``,
    ``GITHUB_APP_PRIVATE_KEY`` and ``SECRET_TOKEN``.
    """
    if use_dotenv:
        load_env_file(dotenv_path)

    raw: dict[str, Any] = {}
    source: Path | None = None
    if path is not None:
        source = Path(path)
        if not source.exists():
            raise ConfigError(f'Configuration file not found: {source}')
        raw = _read_yaml(source)

    gh = cast(dict[str, Any], raw.get('github', {}) or {})
    automation = cast(dict[str, Any], raw.get('automation', {}) or {})
    security = cast(dict[str, Any], raw.get('security', {}) or {})
    logging_config = cast(dict[str, Any], raw.get('logging', {}) or {})
    concurrency_config = cast(dict[str, Any], raw.get('concurrency', {}) or {})

    app_id = _resolve_env_var(gh.get('app_id')) or os.getenv('GITHUB_APP_ID')
    private_key_path = _resolve_env_var(gh.get('private_key_path')) or os.getenv(
        'GITHUB_APP_PRIVATE_KEY'
    )
    secret = os.getenv('SECRET_TOKEN')

    try:
        return BotConfig(
            api_url=str(gh.get('api_url', DEFAULT_API_URL)).rstrip('/'),
            app_id=str(app_id) if app_id else None,
            private_key_path=private_key_path,
            user_agent=gh.get('user_agent', DEFAULT_USER_AGENT),
            timeout=float(gh.get('timeout', 30.0)),
            components_path=automation.get('components_path', 'components'),
            review_label=automation.get('review_label', 'Needs actionability review'),
            client_blocking_label=automation.get('client_blocking_label', 'Client-blocking'),
            throttle_interval=float(automation.get('throttle_interval', 1.0)),
            webhook_secret=_resolve_env_var(security.get('webhook_secret')) or secret,
            shared_secret=_resolve_env_var(security.get('shared_secret')) or secret,
            logging_json_enabled=bool(logging_config.get('json_enabled', False)),
            logging_level=logging_config.get('level', 'INFO'),
            max_workers=int(concurrency_config.get('max_workers', 4)),
            source_file=source,
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f'Invalid configuration value: {exc}') from exc
