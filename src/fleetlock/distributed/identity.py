"""Node identity for lock ownership."""

from __future__ import annotations

import os
import socket
import time


def generate_node_id() -> str:
    """Generate an identifier unique to this process instance.

    Combines host name, process id and creation time in milliseconds, so
    two replicas never share an id and a restarted process gets a new one.
    """
    return f"{socket.gethostname()}-{os.getpid()}-{time.time_ns() // 1_000_000}"
