import os
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import urlparse

from .engine import DEFAULT_TEXTS
from .sessions import DEFAULT_SEND_QUEUE

DEFAULT_BIND = "ws://127.0.0.1:3030"
DEFAULT_PORT = 3030


def parse_bind(bind_uri: str) -> tuple[str, int]:
    # Accept ws://host:port, host:port, :port or just a port
    if bind_uri.startswith("ws://") or bind_uri.startswith("wss://"):
        p = urlparse(bind_uri)
        host = p.hostname or "127.0.0.1"
        port = p.port or DEFAULT_PORT
        return host, int(port)
    if ":" in bind_uri:
        host, port = bind_uri.rsplit(":", 1)
        host = host or "0.0.0.0"
        return host, int(port)
    return "0.0.0.0", int(bind_uri)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


@dataclass
class RelayConfig:
    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    ping_interval: Optional[float] = 20.0
    ping_timeout: Optional[float] = 20.0
    max_frame_bytes: int = 16 * 1024 * 1024
    send_queue_size: int = DEFAULT_SEND_QUEUE
    status_interval: float = 60.0
    seed: bool = True
    texts: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TEXTS))

    @classmethod
    def from_env(cls) -> "RelayConfig":
        host, port = parse_bind(os.getenv("BIND", DEFAULT_BIND))
        return cls(
            host=host,
            port=port,
            ping_interval=_env_float("PING_INTERVAL", 20.0) or None,
            ping_timeout=_env_float("PING_TIMEOUT", 20.0) or None,
            max_frame_bytes=_env_int("MAX_FRAME_BYTES", 16 * 1024 * 1024),
            send_queue_size=_env_int("SEND_QUEUE_SIZE", DEFAULT_SEND_QUEUE),
            status_interval=_env_float("STATUS_INTERVAL", 60.0),
        )
