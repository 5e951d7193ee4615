"""Detect which common development port a local server is listening on."""

from __future__ import annotations

import logging
import socket
from typing import Callable, Iterable

import psutil

from cftpipe.constants import CANDIDATE_PORTS, DEFAULT_PORT

logger = logging.getLogger(__name__)


def listening_ports() -> set[int] | None:
    """Return local TCP ports in LISTEN state, or ``None`` if not permitted.

    ``psutil.net_connections`` needs elevated privileges on macOS.
    """
    try:
        conns = psutil.net_connections(kind="tcp")
    except (psutil.Error, OSError):
        logger.debug("Cannot read connection table", exc_info=True)
        return None
    return {
        c.laddr.port
        for c in conns
        if c.status == psutil.CONN_LISTEN and c.laddr
    }


def is_port_listening(port: int, host: str = "127.0.0.1", timeout: float = 0.2) -> bool:
    """Return True if something accepts a TCP connection on *host*:*port*."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def detect_port(
    candidates: Iterable[int] = CANDIDATE_PORTS,
    probe: Callable[[int], bool] | None = None,
) -> int:
    """Return the first candidate port with a listener, else ``DEFAULT_PORT``.

    *probe* overrides the listener check. Probe errors count as "not
    listening"; this function never raises.
    """
    if probe is None:
        listening = listening_ports()
        if listening is not None:
            probe = listening.__contains__
        else:
            probe = is_port_listening

    for port in candidates:
        try:
            if probe(port):
                logger.debug("Detected listener on port %d", port)
                return port
        except Exception:  # noqa: BLE001
            logger.debug("Port probe failed for %d", port, exc_info=True)
    return DEFAULT_PORT
