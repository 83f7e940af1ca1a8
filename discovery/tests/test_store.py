"""Tests for the in-memory store."""

import json

import pytest

from discovery.common.store import InMemoryStore, StoreError


@pytest.fixture
def small_store():
    return InMemoryStore({
        "profiles": [
            {"id": "a", "name": "Ann", "title": "Engineer", "embedding": [1.0, 0.0]},
            {"id": "b", "name": "Ben", "title": "Designer", "embedding": [0.6, 0.8]},
            {"id": "c", "name": "Cat", "title": "ENGINEERING lead", "embedding": [0.0, 1.0]},
            {"id": "d", "name": "Dan", "title": "No vector"},
        ],
    })


class TestSimilarity:
    @pytest.mark.asyncio
    async def test_orders_by_cosine_similarity(self, small_store):
        rows = await small_store.match_by_embedding("profiles", [1.0, 0.0], top_n=2)
        assert [r["id"] for r in rows] == ["a", "b"]
        assert rows[0]["similarity"] == pytest.approx(1.0)
        assert rows[1]["similarity"] == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_embedding_column_is_stripped(self, small_store):
        rows = await small_store.match_by_embedding("profiles", [1.0, 0.0], top_n=3)
        assert all("embedding" not in r for r in rows)

    @pytest.mark.asyncio
    async def test_rows_without_vectors_are_skipped(self, small_store):
        rows = await small_store.match_by_embedding("profiles", [1.0, 1.0], top_n=10)
        assert "d" not in {r["id"] for r in rows}

    @pytest.mark.asyncio
    async def test_dimension_mismatch(self, small_store):
        with pytest.raises(StoreError, match="dimension"):
            await small_store.match_by_embedding("profiles", [1.0, 0.0, 0.0], top_n=2)

    @pytest.mark.asyncio
    async def test_unknown_table(self, small_store):
        with pytest.raises(StoreError, match="Unknown table"):
            await small_store.match_by_embedding("widgets", [1.0], top_n=1)


class TestQueries:
    @pytest.mark.asyncio
    async def test_search_text_is_case_insensitive_or(self, small_store):
        rows = await small_store.search_text("profiles", ["title"], ["engineer", "designer"])
        assert {r["id"] for r in rows} == {"a", "b", "c"}

    @pytest.mark.asyncio
    async def test_search_text_without_terms(self, small_store):
        assert await small_store.search_text("profiles", ["title"], []) == []

    @pytest.mark.asyncio
    async def test_find_where_in_filter_order_limit(self, small_store):
        rows = await small_store.find_where(
            "profiles", {"id": ["a", "b", "c"]}, order_by="name", descending=True, limit=2
        )
        assert [r["name"] for r in rows] == ["Cat", "Ben"]

    @pytest.mark.asyncio
    async def test_returned_rows_are_copies(self, small_store):
        row = await small_store.get("profiles", "a")
        row["name"] = "Changed"
        assert (await small_store.get("profiles", "a"))["name"] == "Ann"


class TestWrites:
    @pytest.mark.asyncio
    async def test_insert_assigns_id(self, empty_store):
        row = await empty_store.insert("chat_sessions", {"user_id": "u1"})
        assert row["id"]
        assert await empty_store.get("chat_sessions", row["id"]) == row

    @pytest.mark.asyncio
    async def test_update_missing_row(self, empty_store):
        with pytest.raises(StoreError):
            await empty_store.update("chat_sessions", "nope", {"title": "x"})

    @pytest.mark.asyncio
    async def test_delete_returns_count(self, small_store):
        assert await small_store.delete("profiles", {"title": "Engineer"}) == 1
        assert await small_store.get("profiles", "a") is None


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_from_json(self, tmp_path):
        path = tmp_path / "seed.json"
        path.write_text(json.dumps({"projects": [{"id": "x", "title": "Atlas"}]}))
        loaded = InMemoryStore.load(path)
        assert (await loaded.get("projects", "x"))["title"] == "Atlas"

    def test_load_unknown_table(self, tmp_path):
        path = tmp_path / "seed.json"
        path.write_text(json.dumps({"widgets": []}))
        with pytest.raises(StoreError):
            InMemoryStore.load(path)
