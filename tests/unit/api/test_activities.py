"""Tests for the activity feed endpoints."""

from httpx import AsyncClient


class TestActivities:
    """Test the feed and its stats."""

    async def test_feed_is_empty_for_new_user(self, client: AsyncClient) -> None:
        """A new user has no activity."""
        body = (await client.get("/api/activities")).json()
        assert body["data"] == []
        assert body["pagination"]["total"] == 0

    async def test_feed_filters_by_entity_type(self, client: AsyncClient) -> None:
        """entityType narrows the feed."""
        await client.post("/api/skills", json={"name": "Rust"})
        await client.post("/api/portfolio", json={"title": "Site", "type": "PROJECT"})

        body = (await client.get("/api/activities", params={"entityType": "skill"})).json()
        assert [item["type"] for item in body["data"]] == ["SKILL_ADDED"]
        assert body["data"][0]["metadata"] == {"category": "TECHNICAL", "level": "BEGINNER"}

    async def test_stats(self, client: AsyncClient) -> None:
        """Stats count everything, recent activity and types."""
        await client.post("/api/skills", json={"name": "Rust"})
        await client.post("/api/skills", json={"name": "Go"})
        await client.post("/api/portfolio", json={"title": "Site", "type": "PROJECT"})

        stats = (await client.get("/api/activities/stats")).json()
        assert stats["total"] == 3
        assert stats["last30Days"] == 3
        assert len(stats["weeklyActivity"]) == 3
        assert stats["byType"] == {"SKILL_ADDED": 2, "PORTFOLIO_CREATED": 1}

    async def test_stats_are_invalidated_by_writes(self, client: AsyncClient) -> None:
        """A write that records an activity refreshes cached stats."""
        assert (await client.get("/api/activities/stats")).json()["total"] == 0
        await client.post("/api/skills", json={"name": "Rust"})
        assert (await client.get("/api/activities/stats")).json()["total"] == 1

    async def test_feed_is_per_user(self, client: AsyncClient, other_client: AsyncClient) -> None:
        """Users only see their own activity."""
        await other_client.post("/api/skills", json={"name": "Rust"})
        assert (await client.get("/api/activities")).json()["data"] == []

    async def test_unknown_type_filter(self, client: AsyncClient) -> None:
        """Unknown activity types are rejected."""
        response = await client.get("/api/activities", params={"type": "NAPPING"})
        assert response.status_code == 400
