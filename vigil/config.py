"""Configuration dataclasses for Vigil.

Values come from ``VIGIL_*`` environment variables; CLI flags override them.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from vigil.shared.sensor_registry import DEFAULT_TOKEN_BYTES


def _default_db_path() -> str:
    return str(Path.home() / ".vigil" / "vigil.db")


@dataclass
class VigilConfig:
    """Server, storage and token settings."""
    db_path: str = field(default_factory=_default_db_path)
    host: str = "127.0.0.1"
    port: int = 8000
    request_timeout: float = 10.0
    api_key: str | None = None
    token_bytes: int = DEFAULT_TOKEN_BYTES
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        return cls(
            db_path=os.path.expanduser(env.get("VIGIL_DB_PATH", _default_db_path())),
            host=env.get("VIGIL_HOST", cls.host),
            port=int(env.get("VIGIL_PORT", cls.port)),
            request_timeout=float(env.get("VIGIL_REQUEST_TIMEOUT", cls.request_timeout)),
            api_key=env.get("VIGIL_API_KEY") or None,
            token_bytes=int(env.get("VIGIL_TOKEN_BYTES", cls.token_bytes)),
            log_level=env.get("VIGIL_LOG_LEVEL", cls.log_level).upper(),
        )
