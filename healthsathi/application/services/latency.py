"""Simulated network latency for service calls that stand in for remote APIs."""

import asyncio

from healthsathi.config import get_settings


async def simulate_latency() -> None:
    delay_ms = get_settings().SIMULATED_LATENCY_MS
    if delay_ms > 0:
        await asyncio.sleep(delay_ms / 1000)
