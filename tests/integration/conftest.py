"""Integration-test fixtures.

Each test drives a fresh ``MarketEngine`` (from the root conftest) through
its public async API; markets are created through the engine as well.
"""

import pytest_asyncio

from src.main import MarketEngine


@pytest_asyncio.fixture
async def binary_market(engine: MarketEngine) -> str:
    result = await engine.create_market(
        question="Will the harbour bridge reopen by June?",
        outcome_type="BINARY",
        ante=100,
        creator_id="creator",
    )
    assert result.ok, result.message
    return result.data["id"]


@pytest_asyncio.fixture
async def mc_market(engine: MarketEngine) -> dict:
    result = await engine.create_market(
        question="Which colour wins the vote?",
        outcome_type="MULTIPLE_CHOICE",
        ante=300,
        creator_id="creator",
        answers=["Red", "Green", "Blue"],
    )
    assert result.ok, result.message
    return result.data
