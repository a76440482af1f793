"""Versioned configuration with cache and defaults fallback."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from careerxp.db.models import ConfigurationSetting
from careerxp.gamification.config_service import POINTS_COSTS_KEY, ConfigService


async def rows(session_factory, key: str) -> list[ConfigurationSetting]:
    async with session_factory() as db:
        result = await db.execute(select(ConfigurationSetting).where(ConfigurationSetting.key == key))
        return list(result.scalars())


class TestReads:
    @pytest.mark.asyncio
    async def test_defaults_without_rows(self, config):
        costs = await config.get_points_costs()
        assert costs["JOB_QUERY"] == 3
        assert await config.get_xp_reward("CV_ANALYSIS") == 50

    @pytest.mark.asyncio
    async def test_unknown_tier_falls_back_to_free(self, config):
        tier = await config.get_tier("PLATINUM_PLUS")
        assert tier["monthly_points"] == 10

    @pytest.mark.asyncio
    async def test_store_failure_serves_defaults(self, cache):
        factory = MagicMock(side_effect=OperationalError("SELECT", {}, Exception("down")))
        service = ConfigService(factory, cache)
        assert (await service.get_points_costs())["BULK_APPLICATION"] == 8

    @pytest.mark.asyncio
    async def test_slow_store_serves_defaults(self, cache):
        async def hang(*_args, **_kwargs):
            await asyncio.sleep(10)

        session = MagicMock()
        session.execute = hang
        factory = MagicMock()
        factory.return_value.__aenter__.return_value = session
        service = ConfigService(factory, cache, read_timeout=0.05)

        assert (await service.get_points_costs())["BULK_APPLICATION"] == 8
        assert await cache.get_json("config:points_costs") is None

    @pytest.mark.asyncio
    async def test_reads_are_cached(self, config, cache):
        await config.get_xp_rewards()
        assert await cache.get_json("config:xp_rewards") is not None


class TestWrites:
    @pytest.mark.asyncio
    async def test_update_creates_new_active_version(self, config, session_factory, clock):
        await config.initialize_defaults()
        clock.advance(seconds=1)
        await config.update_points_costs({"JOB_QUERY": 4}, "Raise job query cost")

        versions = await rows(session_factory, POINTS_COSTS_KEY)
        active = [r for r in versions if r.is_active]
        assert len(versions) == 2
        assert len(active) == 1
        assert active[0].config["JOB_QUERY"] == 4
        assert active[0].config["COVER_LETTER"] == 1

    @pytest.mark.asyncio
    async def test_update_invalidates_cache(self, config):
        assert await config.get_points_cost("JOB_QUERY") == 3
        await config.update_points_costs({"JOB_QUERY": 4})
        assert await config.get_points_cost("JOB_QUERY") == 4

    @pytest.mark.asyncio
    async def test_initialize_defaults_is_idempotent(self, config):
        assert len(await config.initialize_defaults()) == 3
        assert await config.initialize_defaults() == []
