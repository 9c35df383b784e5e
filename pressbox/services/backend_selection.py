"""Preferred backend selection."""

from pressbox.services.environment import Backend, CapabilitySnapshot


def select_preferred(snapshot: CapabilitySnapshot) -> Backend:
    """Docker whenever its daemon is reachable, otherwise Local.

    Local's own availability is not consulted: with neither backend available
    the answer is still Local.
    """
    if snapshot.docker.available:
        return Backend.DOCKER
    return Backend.LOCAL
