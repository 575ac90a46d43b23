"""
Configuration for a scan run.

Load with LogScanConfig.load_config(), which reads config.yaml (under the
'logscan:' key) with environment variable overrides. Environment variables
are also supported inside the YAML using ${VAR_NAME} / ${VAR_NAME:-default}.
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

logger = logging.getLogger(__name__)

# Default config path: config.yaml in src/ directory
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

DEFAULT_CLUSTER_URL = "https://engsrvprod.kusto.windows.net/"
DEFAULT_DATABASE = "engineeringdata"
DEFAULT_QUERY = "WorkItems | where ExitCode != 0 | order by Finished desc | project Uri=ConsoleUri"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}

# Environment variable for each field
ENV_VARS = {
    "cluster_url": "LOGSCAN_CLUSTER_URL",
    "database": "LOGSCAN_DATABASE",
    "query": "LOGSCAN_QUERY",
    "column": "LOGSCAN_COLUMN",
    "concurrency": "LOGSCAN_CONCURRENCY",
    "max_content_length": "LOGSCAN_MAX_CONTENT_LENGTH",
    "pattern": "LOGSCAN_PATTERN",
    "telemetry_interval": "LOGSCAN_TELEMETRY_INTERVAL",
    "fetch_timeout_seconds": "LOGSCAN_FETCH_TIMEOUT",
    "sock_read_timeout_seconds": "LOGSCAN_SOCK_READ_TIMEOUT",
    "query_timeout_seconds": "LOGSCAN_QUERY_TIMEOUT",
    "max_retries": "LOGSCAN_MAX_RETRIES",
    "retry_base_delay_seconds": "LOGSCAN_RETRY_BASE_DELAY",
    "retry_max_delay_seconds": "LOGSCAN_RETRY_MAX_DELAY",
    "interactive_auth": "LOGSCAN_INTERACTIVE_AUTH",
}


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"logscan.{key} must be a boolean, got {value!r}")


def _parse_number(key: str, value: Any, kind: type) -> Any:
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ValueError(f"logscan.{key} must be {kind.__name__}, got {value!r}") from None


@dataclass
class LogScanConfig:
    """Configuration for one scan run.

    Configuration priority (highest to lowest):
    1. CLI overrides (passed to load_config)
    2. Environment variables
    3. config.yaml file (under 'logscan:' key)
    4. Dataclass defaults
    """

    # Query service
    cluster_url: str = DEFAULT_CLUSTER_URL
    database: str = DEFAULT_DATABASE
    query: str = DEFAULT_QUERY
    column: str = "Uri"  # Result column holding the log URIs
    query_timeout_seconds: int = 3600  # Server-side query timeout
    max_retries: int = 3  # Attempts to open the query response
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0
    proxy_url: str | None = None
    interactive_auth: bool = False  # Allow the browser login flow

    # Scanning
    concurrency: int = 50  # Max scans in flight
    max_content_length: int = 100_000_000  # Bytes; larger logs are skipped
    pattern: str = "No space left on device"  # Case-insensitive regex
    telemetry_interval: int = 100  # Progress log every N scans
    fetch_timeout_seconds: float = 300.0  # Total time per fetch
    sock_read_timeout_seconds: float = 60.0  # Max stall between body reads

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check values. Raises ValueError naming the offending key."""
        parsed = urlparse(self.cluster_url or "")
        if parsed.scheme not in ("https", "http") or not parsed.hostname:
            raise ValueError(
                f"logscan.cluster_url must be an absolute http(s) URL, got {self.cluster_url!r}. "
                "Set in config.yaml or via LOGSCAN_CLUSTER_URL env var."
            )
        for key in ("database", "query", "column"):
            if not str(getattr(self, key) or "").strip():
                raise ValueError(
                    f"logscan.{key} is required. "
                    f"Set in config.yaml or via {ENV_VARS[key]} env var."
                )

        for key in ("concurrency", "max_content_length", "telemetry_interval", "max_retries"):
            if getattr(self, key) < 1:
                raise ValueError(f"logscan.{key} must be at least 1, got {getattr(self, key)}")

        for key in (
            "fetch_timeout_seconds",
            "sock_read_timeout_seconds",
            "query_timeout_seconds",
        ):
            if getattr(self, key) <= 0:
                raise ValueError(f"logscan.{key} must be positive, got {getattr(self, key)}")

        if self.retry_base_delay_seconds < 0 or self.retry_max_delay_seconds < 0:
            raise ValueError("logscan.retry_base_delay_seconds/retry_max_delay_seconds must be >= 0")

        try:
            re.compile(self.pattern)
        except re.error as e:
            raise ValueError(f"logscan.pattern is not a valid regular expression: {e}") from e

    @classmethod
    def load_config(
        cls,
        config_path: Path | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> "LogScanConfig":
        """Load configuration from YAML file with environment variable overrides.

        Configuration priority (highest to lowest):
        1. overrides (CLI flags; None values are ignored)
        2. Environment variables
        3. config.yaml file (under 'logscan:' key)
        4. Dataclass defaults
        """
        config_path = config_path or DEFAULT_CONFIG_PATH
        data: dict[str, Any] = {}
        if config_path.exists():
            logger.debug("Loading configuration from file: %s", config_path)
            data = _expand_env_vars(load_yaml(config_path).get("logscan", None) or {})

        env_overrides = {key: os.getenv(var) for key, var in ENV_VARS.items()}
        # Proxy: check LOGSCAN_PROXY_URL first, then HTTPS_PROXY, then HTTP_PROXY
        env_overrides["proxy_url"] = (
            os.getenv("LOGSCAN_PROXY_URL") or os.getenv("HTTPS_PROXY") or os.getenv("HTTP_PROXY")
        )
        for key, value in env_overrides.items():
            if value is not None:
                data[key] = value

        for key, value in (overrides or {}).items():
            if value is not None:
                data[key] = value

        unknown = sorted(set(data) - set(cls.__dataclass_fields__))
        if unknown:
            logger.warning("Ignoring unknown config keys", extra={"error": ", ".join(unknown)})

        defaults = cls.__dataclass_fields__
        return cls(
            cluster_url=str(data.get("cluster_url", DEFAULT_CLUSTER_URL)),
            database=str(data.get("database", DEFAULT_DATABASE)),
            query=str(data.get("query", DEFAULT_QUERY)),
            column=str(data.get("column", defaults["column"].default)),
            query_timeout_seconds=_parse_number(
                "query_timeout_seconds",
                data.get("query_timeout_seconds", defaults["query_timeout_seconds"].default),
                int,
            ),
            max_retries=_parse_number(
                "max_retries", data.get("max_retries", defaults["max_retries"].default), int
            ),
            retry_base_delay_seconds=_parse_number(
                "retry_base_delay_seconds",
                data.get("retry_base_delay_seconds", defaults["retry_base_delay_seconds"].default),
                float,
            ),
            retry_max_delay_seconds=_parse_number(
                "retry_max_delay_seconds",
                data.get("retry_max_delay_seconds", defaults["retry_max_delay_seconds"].default),
                float,
            ),
            proxy_url=data.get("proxy_url") or None,
            interactive_auth=_parse_bool(
                "interactive_auth", data.get("interactive_auth", False)
            ),
            concurrency=_parse_number(
                "concurrency", data.get("concurrency", defaults["concurrency"].default), int
            ),
            max_content_length=_parse_number(
                "max_content_length",
                data.get("max_content_length", defaults["max_content_length"].default),
                int,
            ),
            pattern=str(data.get("pattern", defaults["pattern"].default)),
            telemetry_interval=_parse_number(
                "telemetry_interval",
                data.get("telemetry_interval", defaults["telemetry_interval"].default),
                int,
            ),
            fetch_timeout_seconds=_parse_number(
                "fetch_timeout_seconds",
                data.get("fetch_timeout_seconds", defaults["fetch_timeout_seconds"].default),
                float,
            ),
            sock_read_timeout_seconds=_parse_number(
                "sock_read_timeout_seconds",
                data.get(
                    "sock_read_timeout_seconds", defaults["sock_read_timeout_seconds"].default
                ),
                float,
            ),
        )


__all__ = ["DEFAULT_CONFIG_PATH", "ENV_VARS", "LogScanConfig"]
