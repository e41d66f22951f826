"""Ephemeral port allocation for candidate applications."""

from __future__ import annotations

import socket


def allocate_ephemeral_port(host: str = "127.0.0.1") -> int:
    """Bind port 0 on ``host``, read the assigned port and release it.

    Another process may claim the port before the app binds it; the boot
    retry in the validation runner covers that window.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return int(sock.getsockname()[1])


__all__ = ["allocate_ephemeral_port"]
