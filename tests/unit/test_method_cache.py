from concurrent.futures import ThreadPoolExecutor

import pytest

from gemini_hybrid.generation.method_cache import MethodCache
from gemini_hybrid.types import GenerationMethod

pytestmark = pytest.mark.unit


def test_get_returns_none_for_unknown_fingerprint():
    assert MethodCache().get("missing") is None


def test_put_then_get_and_overwrite():
    cache = MethodCache()
    cache.put("fp", GenerationMethod.STRUCTURED)
    assert cache.get("fp") is GenerationMethod.STRUCTURED

    cache.put("fp", GenerationMethod.PLAINTEXT)
    assert cache.get("fp") is GenerationMethod.PLAINTEXT
    assert len(cache) == 1


def test_put_accepts_string_values():
    cache = MethodCache()
    cache.put("fp", "plaintext")
    assert cache.get("fp") is GenerationMethod.PLAINTEXT


def test_bare_is_not_cacheable():
    with pytest.raises(ValueError, match="not a cacheable"):
        MethodCache().put("fp", GenerationMethod.BARE)


def test_invalidate_and_clear():
    cache = MethodCache()
    cache.put("a", GenerationMethod.STRUCTURED)
    cache.put("b", GenerationMethod.PLAINTEXT)

    assert cache.invalidate("a") is True
    assert cache.invalidate("a") is False
    assert "a" not in cache
    assert cache.snapshot() == {"b": GenerationMethod.PLAINTEXT}

    cache.clear()
    assert len(cache) == 0


def test_instances_are_independent():
    first, second = MethodCache(), MethodCache()
    first.put("fp", GenerationMethod.STRUCTURED)
    assert second.get("fp") is None


def test_concurrent_writers_leave_a_consistent_map():
    cache = MethodCache()

    def write(i: int) -> None:
        method = GenerationMethod.STRUCTURED if i % 2 else GenerationMethod.PLAINTEXT
        cache.put(f"fp-{i % 10}", method)
        cache.get(f"fp-{(i + 1) % 10}")

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(write, range(500)))

    assert len(cache) == 10
    assert set(cache.snapshot().values()) <= {
        GenerationMethod.STRUCTURED,
        GenerationMethod.PLAINTEXT,
    }
