"""
Unit tests for the skill and market event catalogs

Tests cover:
- Catalog contents and lookup
- Uniform, seed-reproducible event selection
- Fixed selection for scripted runs
"""

import random
from collections import Counter

import pytest

from agent_economy.market.catalog import (
    MARKET_EVENTS,
    SKILLS,
    FixedEventSelector,
    MarketEventSelector,
    skill_for,
)


class TestCatalog:
    """Static catalog contents"""

    def test_event_parameters(self):
        """The four regimes carry their multiplier and trade probability"""
        by_type = {e.type: e for e in MARKET_EVENTS}
        assert set(by_type) == {"boom", "recession", "opportunity", "normal"}
        assert (by_type["boom"].price_multiplier, by_type["boom"].trade_probability) == (1.5, 0.8)
        assert (by_type["recession"].price_multiplier, by_type["recession"].trade_probability) == (0.6, 0.3)
        assert (by_type["opportunity"].price_multiplier, by_type["opportunity"].trade_probability) == (2.0, 0.6)
        assert (by_type["normal"].price_multiplier, by_type["normal"].trade_probability) == (1.0, 0.5)

    def test_skill_lookup(self):
        """Skills resolve by type; unknown types resolve to None"""
        assert skill_for("coding").base_price == 10.0
        assert skill_for("consulting").base_price == 15.0
        assert skill_for("juggling") is None
        assert len({s.type for s in SKILLS}) == len(SKILLS)


class TestMarketEventSelector:
    """Per-epoch event draw"""

    def test_same_seed_same_sequence(self):
        """Two selectors with the same seed draw the same events"""
        first = MarketEventSelector(random.Random(3))
        second = MarketEventSelector(random.Random(3))
        assert [first.select().type for _ in range(20)] == [second.select().type for _ in range(20)]

    def test_every_event_reachable(self):
        """Over many draws every catalog entry shows up"""
        selector = MarketEventSelector(random.Random(1))
        counts = Counter(selector.select().type for _ in range(400))
        assert set(counts) == {e.type for e in MARKET_EVENTS}
        # Roughly uniform: each of four events near 100 draws
        assert all(50 < n < 150 for n in counts.values())

    def test_empty_catalog_rejected(self):
        """A selector needs at least one event"""
        with pytest.raises(ValueError):
            MarketEventSelector(random.Random(1), catalog=())

    def test_fixed_selector(self, quiet_event):
        """FixedEventSelector always returns its event"""
        selector = FixedEventSelector(quiet_event)
        assert selector.select() is quiet_event
        assert selector.select() is quiet_event
