"""TCP reachability check for backend servers."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Protocol, runtime_checkable

import structlog

logger = structlog.get_logger()

DEFAULT_GAME_PORT = 25565
DEFAULT_PROBE_TIMEOUT_SECONDS = 3.0


@runtime_checkable
class ReachabilityProber(Protocol):
    """Answer whether a backend address accepts connections right now."""

    async def is_reachable(self, address: str) -> bool: ...


def parse_address(address: str, default_port: int = DEFAULT_GAME_PORT) -> tuple[str, int]:
    """Split "host:port", "[v6]:port" or a bare host into (host, port).

    Raises ValueError for an empty host or a port outside 1-65535.
    """
    value = address.strip()
    if value.startswith("["):
        host, sep, rest = value[1:].partition("]")
        if not sep or (rest and not rest.startswith(":")):
            raise ValueError(f"Malformed IPv6 address: {address!r}")
        port_text = rest[1:]
    elif value.count(":") == 1:
        host, _, port_text = value.partition(":")
    else:
        # bare hostname, IPv4, or an unbracketed IPv6 literal
        host, port_text = value, ""

    if not host:
        raise ValueError(f"Missing host in address: {address!r}")
    port = int(port_text) if port_text else default_port
    if not 0 < port < 65536:  # noqa: PLR2004
        raise ValueError(f"Port out of range in address: {address!r}")
    return host, port


class TcpReachabilityProber:
    """Open (and immediately close) a TCP connection within a fixed timeout.

    Any failure, including a malformed address, counts as unreachable. A
    reachable port does not prove the game service is ready; callers treat
    the answer as a hint.
    """

    def __init__(self, timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS) -> None:
        self._timeout = timeout_seconds

    async def is_reachable(self, address: str) -> bool:
        try:
            host, port = parse_address(address)
        except ValueError as e:
            logger.warning("invalid backend address, treating as unreachable", address=address, error=str(e))
            return False

        try:
            _reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=self._timeout)
        except (OSError, TimeoutError) as e:
            logger.debug("reachability probe failed", address=address, error=str(e) or type(e).__name__)
            return False

        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        return True
