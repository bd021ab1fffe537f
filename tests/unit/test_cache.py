"""Unit tests for guidecache.cache."""

from __future__ import annotations

from datetime import timedelta

from fakes import T0, FakeClock

from guidecache.cache import GuideCache
from guidecache.models.guide import ChannelSummary, ProgrammeEntry, TenantCacheEntry


def _entry(last_updated=T0, *, programmes: int = 2) -> TenantCacheEntry:
    channel = ChannelSummary(
        id="ch-1",
        source_id="src-1",
        external_id="101",
        name="News 24",
        stream_url="http://iptv.example.com/live/101.ts",
    )
    entries = [
        ProgrammeEntry(
            id=f"p{i}",
            channel_id="ch-1",
            channel_external_id="101",
            title=f"Bulletin {i}",
            start_time=T0 + timedelta(hours=i),
            end_time=T0 + timedelta(hours=i + 1),
        )
        for i in range(programmes)
    ]
    return TenantCacheEntry(
        channels=[channel],
        programme_index={"ch-1": entries, "ch-2": []},
        last_updated=last_updated,
    )


class TestValidity:
    def test_missing_tenant_is_invalid(self, cache: GuideCache) -> None:
        assert cache.is_valid("t1") is False
        assert cache.get("t1") is None

    def test_fresh_entry_is_valid(self, cache: GuideCache) -> None:
        cache.put("t1", _entry())
        assert cache.is_valid("t1") is True

    def test_entry_expires_at_ttl(self, cache: GuideCache, clock: FakeClock) -> None:
        cache.put("t1", _entry())
        clock.advance(hours=4, seconds=-1)
        assert cache.is_valid("t1") is True
        clock.advance(seconds=1)
        assert cache.is_valid("t1") is False

    def test_stale_entry_still_returned_by_get(self, cache: GuideCache, clock: FakeClock) -> None:
        entry = _entry()
        cache.put("t1", entry)
        clock.advance(hours=5)
        assert cache.is_valid("t1") is False
        assert cache.get("t1") is entry

    def test_custom_ttl(self, clock: FakeClock) -> None:
        cache = GuideCache(timedelta(minutes=10), clock=clock)
        cache.put("t1", _entry())
        clock.advance(minutes=11)
        assert cache.is_valid("t1") is False
        assert cache.ttl == timedelta(minutes=10)


class TestChannelProgrammes:
    def test_returns_channel_list(self, cache: GuideCache) -> None:
        cache.put("t1", _entry())
        programmes = cache.get_channel_programmes("t1", "ch-1")
        assert programmes is not None
        assert [p.id for p in programmes] == ["p0", "p1"]

    def test_unknown_channel_is_empty(self, cache: GuideCache) -> None:
        cache.put("t1", _entry())
        assert cache.get_channel_programmes("t1", "nope") == []

    def test_channel_without_data_is_empty(self, cache: GuideCache) -> None:
        cache.put("t1", _entry())
        assert cache.get_channel_programmes("t1", "ch-2") == []

    def test_invalid_entry_returns_none(self, cache: GuideCache, clock: FakeClock) -> None:
        cache.put("t1", _entry())
        clock.advance(hours=5)
        assert cache.get_channel_programmes("t1", "ch-1") is None


class TestMutation:
    def test_put_replaces_wholesale(self, cache: GuideCache, clock: FakeClock) -> None:
        first = _entry()
        cache.put("t1", first)
        second = _entry(clock() + timedelta(hours=1), programmes=0)
        cache.put("t1", second)
        assert cache.get("t1") is second
        # The replaced entry is untouched
        assert first.programme_entry_count() == 2

    def test_evict(self, cache: GuideCache) -> None:
        cache.put("t1", _entry())
        cache.evict("t1")
        assert cache.get("t1") is None
        assert cache.is_valid("t1") is False

    def test_evict_missing_is_noop(self, cache: GuideCache) -> None:
        cache.evict("never-cached")
        assert cache.tenant_ids() == []


class TestStats:
    def test_empty(self, cache: GuideCache) -> None:
        stats = cache.stats()
        assert stats.tenant_count == 0
        assert stats.total_channels == 0
        assert stats.total_programme_entries == 0

    def test_counts_across_tenants(self, cache: GuideCache) -> None:
        cache.put("t1", _entry(programmes=3))
        cache.put("t2", _entry(programmes=1))
        stats = cache.stats()
        assert stats.tenant_count == 2
        assert stats.total_channels == 2
        assert stats.total_programme_entries == 4

    def test_stale_entries_still_counted(self, cache: GuideCache, clock: FakeClock) -> None:
        cache.put("t1", _entry())
        clock.advance(days=1)
        assert cache.stats().tenant_count == 1
