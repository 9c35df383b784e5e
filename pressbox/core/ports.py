"""Free-port lookup for PHP built-in servers.

``php -S localhost:<port>`` may bind either loopback family, so a port only
counts as free when nothing answers on 127.0.0.1 or ::1.
"""

import socket

LOOPBACK_ADDRESSES = ((socket.AF_INET, "127.0.0.1"), (socket.AF_INET6, "::1"))
MAX_PORT = 65535


def _answers(family: socket.AddressFamily, address: str, port: int) -> bool:
    try:
        with socket.socket(family, socket.SOCK_STREAM) as probe:
            probe.settimeout(0.5)
            return probe.connect_ex((address, port)) == 0
    except OSError:
        # Address family unsupported on this host
        return False


def check_port_available(port: int) -> bool:
    """True when no server is listening on ``port`` on either loopback address."""
    return not any(_answers(family, address, port) for family, address in LOOPBACK_ADDRESSES)


def find_available_port(start: int, exclude: set[int] | None = None) -> int:
    """Return the first free port at or above ``start`` that is not in ``exclude``.

    Raises:
        RuntimeError: If every port up to 65535 is taken
    """
    skipped = exclude or set()
    for port in range(start, MAX_PORT + 1):
        if port not in skipped and check_port_available(port):
            return port
    raise RuntimeError(f"No free port for the PHP server at or above {start}")
