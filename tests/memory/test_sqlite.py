"""Tests for the SQLite pattern store."""

import pytest
import pytest_asyncio

from neuroevo.exceptions import PatternStoreError
from neuroevo.memory.sqlite import SQLitePatternStore
from neuroevo.types import PatternType


@pytest_asyncio.fixture
async def sqlite_store(tmp_path):
    store = SQLitePatternStore(tmp_path / "nested" / "patterns.db")
    await store.initialize()
    return store


@pytest.mark.asyncio
async def test_round_trip(sqlite_store, pattern_factory):
    p = pattern_factory("p1")
    await sqlite_store.store_pattern(p)

    loaded = await sqlite_store.get_pattern("p1")
    assert loaded == p
    assert await sqlite_store.get_pattern("missing") is None
    assert await sqlite_store.count() == 1


@pytest.mark.asyncio
async def test_store_replaces_existing(sqlite_store, pattern_factory):
    p = pattern_factory("p1")
    await sqlite_store.store_pattern(p)
    await sqlite_store.store_pattern(p.model_copy(update={"name": "renamed"}))

    assert (await sqlite_store.get_pattern("p1")).name == "renamed"
    assert await sqlite_store.count() == 1


@pytest.mark.asyncio
async def test_similarity_and_type_queries(sqlite_store, pattern_factory):
    await sqlite_store.store_pattern(pattern_factory("near", embedding=[1.0, 0.0]))
    await sqlite_store.store_pattern(pattern_factory("far", embedding=[0.0, 1.0]))
    await sqlite_store.store_pattern(
        pattern_factory("opt", embedding=[0.7, 0.7], pattern_type=PatternType.OPTIMIZATION)
    )

    similar = await sqlite_store.find_similar_patterns([1.0, 0.1], 2)
    assert [p.id for p in similar] == ["near", "opt"]

    coordination = await sqlite_store.get_patterns_by_type(PatternType.COORDINATION)
    assert {p.id for p in coordination} == {"near", "far"}


@pytest.mark.asyncio
async def test_list_and_delete(sqlite_store, pattern_factory):
    for i in range(3):
        await sqlite_store.store_pattern(pattern_factory(f"p{i}"))

    assert len(await sqlite_store.list_patterns(limit=2)) == 2
    assert await sqlite_store.delete_pattern("p0") is True
    assert await sqlite_store.delete_pattern("p0") is False
    assert await sqlite_store.count() == 2


@pytest.mark.asyncio
async def test_uninitialized_store_raises_typed_error(tmp_path):
    store = SQLitePatternStore(tmp_path / "empty.db")
    with pytest.raises(PatternStoreError):
        await store.get_pattern("anything")
