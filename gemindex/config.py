"""Configuration file loading for gemindex.

The configuration lives in a JSON file (``.gemindex.json`` by default) next
to the files being synced::

    {
      "version": 1,
      "store": "my-store",
      "collect": {"include": ["docs/**/*.md"], "exclude": ["**/drafts/**"]},
      "sync": {"delete": false, "concurrency": 8},
      "api": {"endpoint": "http://localhost:4000", "token_env": "GEMINDEX_TOKEN"}
    }
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .exceptions import GemindexConfigError
from .utils import (
    DEFAULT_BASE_DELAY,
    DEFAULT_CONCURRENCY,
    DEFAULT_ENDPOINT,
    DEFAULT_MAX_ATTEMPTS,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncSettings:
    """Settings of the ``sync`` section."""

    delete: bool = False
    concurrency: int = DEFAULT_CONCURRENCY
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY


@dataclass
class ApiSettings:
    """Settings of the ``api`` section."""

    endpoint: str = DEFAULT_ENDPOINT
    token_env: Optional[str] = None

    @property
    def token(self) -> Optional[str]:
        """API token read from the configured environment variable."""
        if not self.token_env:
            return None
        return os.environ.get(self.token_env) or None


@dataclass
class GemindexConfig:
    """Validated gemindex configuration."""

    store: str
    include: list[str]
    exclude: list[str] = field(default_factory=list)
    sync: SyncSettings = field(default_factory=SyncSettings)
    api: ApiSettings = field(default_factory=ApiSettings)
    version: int = 1
    path: Optional[Path] = None
    """Path of the file this configuration was loaded from"""

    @property
    def base_dir(self) -> Path:
        """Directory that include/exclude patterns are relative to."""
        if self.path is None:
            return Path.cwd()
        return self.path.parent


def _section(data: dict, key: str) -> dict:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise GemindexConfigError(f"'{key}' must be an object")
    return value


def _pattern_list(section: dict, key: str, name: str) -> list[str]:
    value = section.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(p, str) for p in value):
        raise GemindexConfigError(f"'{name}' must be a list of glob patterns")
    return value


def _typed(section: dict, key: str, name: str, expected: Any, default: Any) -> Any:
    value = section.get(key, default)
    # bool is a subclass of int, so it must be rejected explicitly
    if isinstance(value, bool) and expected is not bool:
        raise GemindexConfigError(f"'{name}' has an invalid value: {value!r}")
    if not isinstance(value, expected):
        raise GemindexConfigError(f"'{name}' has an invalid value: {value!r}")
    return value


def parse_config(data: Any, path: Optional[Path] = None) -> GemindexConfig:
    """Validate raw configuration data.

    Args:
        data: Parsed JSON document
        path: File the data came from

    Returns:
        GemindexConfig

    Raises:
        GemindexConfigError: If required fields are missing or invalid
    """
    if not isinstance(data, dict):
        raise GemindexConfigError("Config must be a JSON object")

    store = data.get("store")
    if not store or not isinstance(store, str):
        raise GemindexConfigError("Missing required field: store")

    collect = _section(data, "collect")
    include = _pattern_list(collect, "include", "collect.include")
    if not include:
        raise GemindexConfigError(
            "Missing required field: collect.include (must have at least one pattern)"
        )
    exclude = _pattern_list(collect, "exclude", "collect.exclude")

    sync_data = _section(data, "sync")
    sync = SyncSettings(
        delete=_typed(sync_data, "delete", "sync.delete", bool, False),
        concurrency=_typed(
            sync_data, "concurrency", "sync.concurrency", int, DEFAULT_CONCURRENCY
        ),
        max_attempts=_typed(
            sync_data, "max_attempts", "sync.max_attempts", int, DEFAULT_MAX_ATTEMPTS
        ),
        base_delay=float(
            _typed(
                sync_data,
                "base_delay",
                "sync.base_delay",
                (int, float),
                DEFAULT_BASE_DELAY,
            )
        ),
    )
    if sync.concurrency < 1:
        raise GemindexConfigError("'sync.concurrency' must be at least 1")
    if sync.max_attempts < 1:
        raise GemindexConfigError("'sync.max_attempts' must be at least 1")
    if sync.base_delay < 0:
        raise GemindexConfigError("'sync.base_delay' must not be negative")

    api_data = _section(data, "api")
    token_env = api_data.get("token_env")
    if token_env is not None and not isinstance(token_env, str):
        raise GemindexConfigError("'api.token_env' must be a string")
    api = ApiSettings(
        endpoint=_typed(api_data, "endpoint", "api.endpoint", str, DEFAULT_ENDPOINT),
        token_env=token_env,
    )

    return GemindexConfig(
        store=store,
        include=include,
        exclude=exclude,
        sync=sync,
        api=api,
        version=_typed(data, "version", "version", int, 1),
        path=path,
    )


def load_config(config_path: Path) -> GemindexConfig:
    """Load and validate a config file.

    Args:
        config_path: Path to the JSON config file

    Returns:
        GemindexConfig

    Raises:
        GemindexConfigError: If the file is missing, unreadable or invalid
    """
    full_path = config_path.expanduser().resolve()
    if not full_path.exists():
        raise GemindexConfigError(f"Config file not found: {full_path}")

    try:
        with open(full_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise GemindexConfigError(f"Failed to parse JSON: {e}") from e
    except OSError as e:
        raise GemindexConfigError(f"Failed to read config file: {e}") from e

    config = parse_config(data, path=full_path)
    logger.debug("Loaded config from %s (store: %s)", full_path, config.store)
    return config
