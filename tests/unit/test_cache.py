"""Unit tests for the byte-bounded LRU result cache."""

from cexplorer.assembly import AssemblyLine
from cexplorer.compilation import CompilationResult, LRUByteCache
from cexplorer.compilation.cache import entry_size


def _result(text: str) -> CompilationResult:
    return CompilationResult(code=0, asm=[AssemblyLine(text=text)])


class TestLRUByteCache:
    def test_get_miss_returns_none(self):
        assert LRUByteCache(1000).get("missing") is None

    def test_put_and_get(self):
        cache = LRUByteCache(10_000)
        result = _result("ret")

        assert cache.put("k", result) is True
        assert cache.get("k") is result
        assert "k" in cache
        assert len(cache) == 1
        assert cache.size == entry_size("k", result)

    def test_evicts_least_recently_used(self):
        one, two, three = _result("a"), _result("b"), _result("c")
        per_entry = entry_size("k1", one)
        cache = LRUByteCache(per_entry * 2)

        cache.put("k1", one)
        cache.put("k2", two)
        cache.get("k1")
        cache.put("k3", three)

        assert "k1" in cache
        assert "k2" not in cache
        assert "k3" in cache
        assert cache.size <= cache.capacity

    def test_oversized_entry_is_not_stored(self):
        big = _result("x" * 500)
        cache = LRUByteCache(100)

        assert cache.put("big", big) is False
        assert len(cache) == 0
        assert cache.size == 0

    def test_replacing_key_updates_size(self):
        cache = LRUByteCache(10_000)
        cache.put("k", _result("short"))
        cache.put("k", _result("a much longer listing line"))

        assert len(cache) == 1
        assert cache.size == entry_size("k", _result("a much longer listing line"))

    def test_clear(self):
        cache = LRUByteCache(10_000)
        cache.put("k", _result("ret"))
        cache.clear()

        assert len(cache) == 0
        assert cache.size == 0
