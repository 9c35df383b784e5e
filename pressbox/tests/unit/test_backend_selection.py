"""Unit tests for backend selection and capability snapshots."""

import pytest

from pressbox.services.backend_selection import select_preferred
from pressbox.services.environment import Backend, CapabilitySnapshot


def snapshot(local: bool, docker: bool) -> CapabilitySnapshot:
    return CapabilitySnapshot.from_availability(
        local_available=local,
        docker_available=docker,
        local_description="local",
        docker_description="docker",
    )


@pytest.mark.parametrize(
    ("local", "docker", "expected"),
    [
        (True, True, Backend.DOCKER),
        (False, True, Backend.DOCKER),
        (True, False, Backend.LOCAL),
        (False, False, Backend.LOCAL),
    ],
)
def test_select_preferred_follows_docker_availability(local, docker, expected):
    """Test Docker is selected iff it is available."""
    assert select_preferred(snapshot(local, docker)) is expected


@pytest.mark.parametrize(
    ("local", "docker", "local_preferred", "docker_preferred"),
    [
        (True, True, False, True),
        (False, True, True, True),
        (True, False, True, False),
        (False, False, True, False),
    ],
)
def test_snapshot_derives_preferred_flags(local, docker, local_preferred, docker_preferred):
    result = snapshot(local, docker)
    assert result.local.preferred is local_preferred
    assert result.docker.preferred is docker_preferred


def test_snapshot_is_indexable_by_backend():
    result = snapshot(True, False)
    assert result[Backend.LOCAL] is result.local
    assert result[Backend.DOCKER] is result.docker


def test_snapshot_to_dict_keys_by_backend_value():
    data = snapshot(True, False).to_dict()
    assert set(data) == {"local", "docker"}
    assert data["docker"] == {
        "type": "docker",
        "available": False,
        "preferred": False,
        "description": "docker",
        "version": None,
    }


def test_backend_other_is_the_alternate_variant():
    assert Backend.LOCAL.other is Backend.DOCKER
    assert Backend.DOCKER.other is Backend.LOCAL
