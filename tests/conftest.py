"""
Root conftest.py for pytest configuration.

Makes the tirds package importable and provides shared fixtures:
a controllable clock, a temporary durable cache, and sample proposals.
"""

import asyncio
import json
import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

root_dir = Path(__file__).parent.parent
if str(root_dir) not in sys.path:
    sys.path.insert(0, str(root_dir))

import pytest

from tirds.cache.sqlite_store import SqliteCacheStore
from tirds.schemas import CacheCategory, CacheEntry, TradeProposal

pytest_plugins = ('pytest_asyncio',)

NOW = datetime(2026, 1, 15, 15, 30, tzinfo=timezone.utc)


class FakeClock:
    """Wall clock that only moves when a test says so."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def temp_db_path():
    """Create a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield os.path.join(tmpdir, "tirds_cache.db")


@pytest.fixture
def writable_store(temp_db_path):
    store = SqliteCacheStore(temp_db_path, read_only=False)
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def make_entry():
    """Build CacheEntry objects relative to NOW."""

    def _make(key, value, category=CacheCategory.INDICATOR, symbol=None,
              expires_in=timedelta(hours=1), source="test"):
        return CacheEntry(
            key=key,
            category=category,
            value=value,
            source=source,
            symbol=symbol,
            created_at=NOW - timedelta(minutes=5),
            expires_at=NOW + expires_in,
            updated_at=NOW - timedelta(minutes=5),
        )

    return _make


@pytest.fixture
def sample_proposal():
    return TradeProposal.model_validate({
        "id": "6f1c2a8e-3b4d-4c5e-8f90-1a2b3c4d5e6f",
        "schema_version": 1,
        "symbol": "AAPL",
        "legs": [{"side": "buy", "price": "185.50", "quantity": "100"}],
        "proposed_at": "2026-01-15T15:30:00Z",
    })


@pytest.fixture
def sample_proposal_json(sample_proposal):
    return json.dumps(sample_proposal.model_dump(mode="json"))


@pytest.fixture
def scripted_invoke():
    """
    Factory for stand-ins of ``invoke_claude``.

    Each fake records its calls and either returns ``response``, sleeps for
    ``delay`` seconds first, or raises ``error``.
    """

    def _factory(response=None, delay=0.0, error=None):
        calls = []

        async def invoke(system_prompt, user_prompt, model, timeout, command=None):
            calls.append({
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "model": model,
                "timeout": timeout,
            })
            if delay:
                await asyncio.sleep(delay)
            if error is not None:
                raise error
            return response

        invoke.calls = calls
        return invoke

    return _factory


@pytest.fixture
def specialist_reply():
    """Model output for a specialist, wrapped in a json fence."""

    def _reply(confidence=0.7, direction="bullish", warnings=None):
        return "```json\n" + json.dumps({
            "direction": direction,
            "confidence": confidence,
            "reasoning": f"base 0.50 -> {confidence}",
            "warnings": warnings or [],
            "analysis": {"rsi_signal": "oversold"},
            "data_sources_consulted": ["indicator:rsi_14:AAPL"],
        }) + "\n```"

    return _reply


@pytest.fixture
def synthesis_payload():
    return {
        "recommendation": "proceed_with_caution",
        "overall_confidence": {"score": 0.64, "reasoning": "technicals strong, macro neutral"},
        "leg_assessments": [{
            "side": "buy",
            "confidence": {"score": 0.64, "reasoning": "limit below market"},
            "price_assessment": {"favorability": "0.4", "suggested_price": "184.90", "reasoning": "near support"},
        }],
        "information_relevance": {
            "score": 0.7,
            "source_contributions": [{"source_name": "indicator:rsi_14:AAPL", "relevance": 0.8, "freshness_seconds": 300}],
        },
        "confidence_decay": {"daily_rate": "0.05", "model": "exponential"},
        "price_target_decay": None,
        "trade_intelligence": {"smartness_score": 0.6, "assessments": ["buying below market is sound"]},
        "decay_projection": [
            {"offset_hours": 1, "projected_confidence": 0.64},
            {"offset_hours": 4, "projected_confidence": 0.62},
            {"offset_hours": 24, "projected_confidence": 0.58},
            {"offset_hours": 72, "projected_confidence": 0.50},
            {"offset_hours": 168, "projected_confidence": 0.41},
            {"offset_hours": 720, "projected_confidence": 0.20},
        ],
        "new_information_expected": False,
        "reasoning": "weighted blend of surviving specialists",
    }
