# tinyclaw - Message relay queue for chat-to-agent bridges
# Copyright (c) 2025 xnoto
"""Configuration for the queue processor and its tools.

Values resolve with precedence: environment variable > settings.json > default.
The settings document lives at ``$TINYCLAW_HOME/settings.json``.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)

TINYCLAW_HOME = Path(os.environ.get("TINYCLAW_HOME", str(Path.home() / ".tinyclaw")))
SETTINGS_FILE = TINYCLAW_HOME / "settings.json"

# Model aliases accepted in settings.json (models.anthropic.model)
MODEL_IDS = {
    "sonnet": "claude-sonnet-4-5",
    "opus": "claude-opus-4-6",
}


def _load_config_file() -> dict:
    """Load settings.json, returning {} if missing or invalid."""
    if not SETTINGS_FILE.exists():
        return {}
    try:
        data = json.loads(SETTINGS_FILE.read_text())
    except (json.JSONDecodeError, OSError) as e:
        log.warning(f"Failed to load settings file {SETTINGS_FILE}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _get_config_value(
    env_var: str, path: list[str], default: Any, config: dict, value_type: type = str
) -> Any:
    """Resolve a setting from the environment, then the config dict, then the default."""
    raw = os.environ.get(env_var)
    if raw is None:
        node: Any = config
        for key in path:
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        raw = node

    try:
        return value_type(raw)
    except (TypeError, ValueError):
        log.warning(f"Invalid value for {env_var}: {raw!r}, using {default!r}")
        return default


_config = _load_config_file()

QUEUE_DIR = TINYCLAW_HOME / "queue"
QUEUE_INCOMING = QUEUE_DIR / "incoming"
QUEUE_PROCESSING = QUEUE_DIR / "processing"
QUEUE_OUTGOING = QUEUE_DIR / "outgoing"
QUEUE_FAILED = QUEUE_DIR / "failed"
LOG_FILE = TINYCLAW_HOME / "logs" / "queue.log"
RESET_FLAG = TINYCLAW_HOME / "reset_flag"
RESET_FLAGS_DIR = TINYCLAW_HOME / "reset_flags"
METRICS_FILE = TINYCLAW_HOME / "metrics.prom"

CHATS_DIR = Path(
    _get_config_value(
        "TINYCLAW_CHATS_DIR", ["queue", "chats_dir"], str(TINYCLAW_HOME / "chats"), _config
    )
).expanduser()
POLL_INTERVAL = _get_config_value(
    "TINYCLAW_POLL_INTERVAL", ["queue", "poll_interval"], 1.0, _config, float
)
# 0 disables dead-lettering: failed jobs return to incoming forever
MAX_ATTEMPTS = _get_config_value("TINYCLAW_MAX_ATTEMPTS", ["queue", "max_attempts"], 0, _config, int)
AGENT_COMMAND = _get_config_value("TINYCLAW_AGENT_COMMAND", ["agent", "command"], "claude", _config)
LOG_LEVEL = _get_config_value("TINYCLAW_LOG_LEVEL", ["log_level"], "INFO", _config).upper()
METRICS_INTERVAL = _get_config_value(
    "TINYCLAW_METRICS_INTERVAL", ["metrics", "interval"], 30.0, _config, float
)


def resolve_model(settings_file: Path | None = None) -> str | None:
    """Return the agent model id selected in settings, or None for the agent default.

    The settings document is re-read on every call so edits apply to the
    next job without a restart.
    """
    path = settings_file or SETTINGS_FILE
    try:
        settings = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError):
        return None
    node: Any = settings
    for key in ("models", "anthropic", "model"):
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    if not isinstance(node, str):
        return None
    return MODEL_IDS.get(node)
