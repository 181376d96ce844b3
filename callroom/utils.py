"""
Shared utilities: environment loading and configuration.
"""

from __future__ import annotations

import importlib
import os
from dataclasses import dataclass
from pathlib import Path


DEFAULT_MEDIA_PLATFORM = "callroom.media.loopback:LoopbackMediaPlatform"


def _parse_bool(value: object, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


# =============================================================================


def load_env(env_path: Path | None = None) -> None:
    """Load .env file into os.environ. Handles quoted values and spaces."""
    if env_path is None:
        env_path = Path.cwd() / ".env"

    if not env_path.exists():
        return

    for line in env_path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            key, val = line.split("=", 1)
            val = val.strip().strip('"').strip("'")
            os.environ[key.strip()] = val


# =============================================================================
# Configuration (call load_env() before accessing these)
# =============================================================================


@dataclass(frozen=True)
class CallConfig:
    app_id: str
    token_server_url: str
    xmpp_server: str
    xmpp_port: int
    xmpp_domain: str
    muc_service: str
    connect_timeout_s: float
    media_platform: str
    xmpp_plaintext: bool


def get_call_config() -> CallConfig:
    """Get call configuration from environment."""
    server = (os.getenv("CALLROOM_XMPP_SERVER") or "localhost").strip()
    domain = (os.getenv("CALLROOM_XMPP_DOMAIN") or server).strip()
    token_url = (os.getenv("CALLROOM_TOKEN_SERVER_URL") or "http://localhost:8080").strip()

    try:
        port = int(os.getenv("CALLROOM_XMPP_PORT", "5222"))
    except ValueError:
        port = 5222
    try:
        connect_timeout_s = float(os.getenv("CALLROOM_CONNECT_TIMEOUT_S", "15"))
    except ValueError:
        connect_timeout_s = 15.0

    return CallConfig(
        app_id=(os.getenv("CALLROOM_APP_ID") or "").strip(),
        token_server_url=token_url.rstrip("/"),
        xmpp_server=server,
        xmpp_port=port,
        xmpp_domain=domain,
        muc_service=(os.getenv("CALLROOM_MUC_SERVICE") or f"conference.{domain}").strip(),
        connect_timeout_s=max(1.0, connect_timeout_s),
        media_platform=(os.getenv("CALLROOM_MEDIA_PLATFORM") or DEFAULT_MEDIA_PLATFORM).strip(),
        xmpp_plaintext=_parse_bool(os.getenv("CALLROOM_XMPP_PLAINTEXT"), default=True),
    )


def load_object(path: str) -> object:
    """Resolve a `module:attr` import path."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Expected 'module:attr', got {path!r}")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError:
        raise ValueError(f"{module_name} has no attribute {attr!r}") from None
