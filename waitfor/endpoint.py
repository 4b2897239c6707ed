from __future__ import annotations
from dataclasses import dataclass

from .errors import UsageError


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int

    def __post_init__(self):
        if not self.host:
            raise UsageError("host must not be empty")
        if not isinstance(self.port, int) or not (1 <= self.port <= 65535):
            raise UsageError(f"port out of range: {self.port}")

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def parse_endpoint(token: str) -> Endpoint:
    """Parse ``host:port`` (or ``[v6addr]:port``) into an Endpoint."""
    if not token or ":" not in token:
        raise UsageError(f"expected HOST:PORT, got {token!r}")
    host, _, port_s = token.rpartition(":")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if not (port_s.isascii() and port_s.isdigit()):
        raise UsageError(f"invalid port in {token!r}")
    port = int(port_s)
    return Endpoint(host, port)
