"""Tests for the whitelist cache."""

from __future__ import annotations

import threading

import pytest

from ingestkit_cellguard.errors import CellGuardException
from ingestkit_cellguard.whitelist import WhitelistCache


@pytest.mark.unit
class TestWhitelistCache:
    def test_add_and_contains(self):
        cache = WhitelistCache()
        assert cache.add("ñ") is True
        assert "ñ" in cache
        assert len(cache) == 1

    def test_add_existing_returns_false(self):
        cache = WhitelistCache()
        cache.add("ñ")
        assert cache.add("ñ") is False

    @pytest.mark.parametrize("char", ["\x00", "\t", "\u200b", "\ufeff", "\x85", "ab", ""])
    def test_refuses_floor_and_non_single_chars(self, char):
        cache = WhitelistCache()
        assert cache.add(char) is False
        assert len(cache) == 0

    def test_snapshot_is_immutable(self):
        cache = WhitelistCache()
        before = cache.chars
        cache.add("é")
        assert before == frozenset()
        assert cache.chars == frozenset({"é"})

    def test_loads_from_store(self, learning_store):
        learning_store.add_whitelisted_character("ø", "nordic")
        assert "ø" in WhitelistCache(learning_store)

    def test_writes_through(self, learning_store):
        WhitelistCache(learning_store).add("ł", "polish")
        assert [w.char for w in learning_store.load_whitelist()] == ["ł"]

    def test_store_failure_leaves_cache_unchanged(self, failing_learning_store):
        cache = WhitelistCache(failing_learning_store)
        with pytest.raises(CellGuardException):
            cache.add("ñ")
        assert "ñ" not in cache

    def test_add_without_persist(self, failing_learning_store):
        cache = WhitelistCache(failing_learning_store)
        assert cache.add("ñ", persist=False) is True
        assert failing_learning_store.calls == 0

    def test_add_many(self):
        cache = WhitelistCache()
        added = cache.add_many([("é", ""), ("\x00", ""), ("é", ""), ("ü", "")])
        assert added == ["é", "ü"]

    def test_concurrent_adds(self):
        cache = WhitelistCache()
        chars = [chr(0xC0 + i) for i in range(40)]
        threads = [threading.Thread(target=cache.add, args=(c,)) for c in chars * 2]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert cache.chars == frozenset(chars)
