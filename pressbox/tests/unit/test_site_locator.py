"""Unit tests for SiteLocator."""

from unittest.mock import AsyncMock

import pytest

from pressbox.services.environment import Backend
from pressbox.services.site_locator import SiteLocator
from pressbox.tests.mock_utils import create_mock_docker_backend


@pytest.mark.asyncio
async def test_site_in_docker_inventory_is_docker():
    docker = create_mock_docker_backend(sites=[{"name": "shop"}, {"name": "api"}])
    assert await SiteLocator(docker).locate("api") is Backend.DOCKER


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["blog", "", "shop-2", "shop "])
async def test_names_missing_from_docker_are_local(name):
    docker = create_mock_docker_backend(sites=[{"name": "shop"}])
    assert await SiteLocator(docker).locate(name) is Backend.LOCAL


@pytest.mark.asyncio
async def test_docker_errors_mean_local():
    """Test that an unreachable Docker inventory is treated as 'not in Docker'."""
    docker = create_mock_docker_backend(list_sites=AsyncMock(side_effect=RuntimeError("down")))
    assert await SiteLocator(docker).locate("shop") is Backend.LOCAL


@pytest.mark.asyncio
@pytest.mark.parametrize(("listed", "asked"), [("Blog", "blog"), ("blog", "BLOG"), ("My-Shop", "my-shop")])
async def test_names_match_by_docker_site_id(listed, asked):
    docker = create_mock_docker_backend(sites=[{"name": listed}])
    assert await SiteLocator(docker).locate(asked) is Backend.DOCKER
