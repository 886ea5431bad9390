"""Tests for the skill endpoints."""

from httpx import AsyncClient

from edustride.api.routers.skills import is_level_up
from edustride.events.broker import EventBroker
from edustride.events.schemas import RealtimeEventType


async def create_skill(client: AsyncClient, **values) -> dict:
    response = await client.post("/api/skills", json={"name": "Python", **values})
    assert response.status_code == 201, response.text
    return response.json()


class TestLevelUp:
    """Test quarter-mark detection."""

    def test_crossing_onto_a_quarter_mark(self) -> None:
        """Reaching 25, 50, 75 or 100 from below is a level-up."""
        assert is_level_up(10, 25)
        assert is_level_up(60, 100)

    def test_not_a_level_up(self) -> None:
        """Other values, or going down, are not."""
        assert not is_level_up(10, 30)
        assert not is_level_up(50, 50)
        assert not is_level_up(75, 50)


class TestSkills:
    """Test skill CRUD and its events."""

    async def test_create_defaults(self, client: AsyncClient) -> None:
        """New skills default to technical beginner at zero."""
        body = await create_skill(client)
        assert body["category"] == "TECHNICAL"
        assert body["level"] == "BEGINNER"
        assert body["progress"] == 0
        assert body["isPublic"] is True

    async def test_create_publishes_added(self, client: AsyncClient, broker: EventBroker) -> None:
        """Adding a skill publishes skill-progress with action added."""
        body = await create_skill(client, progress=20)
        event = broker.recent_events("user-1", RealtimeEventType.SKILL_PROGRESS)[0]
        assert event.payload == {
            "skillId": body["id"],
            "skillName": "Python",
            "action": "added",
            "oldProgress": None,
            "newProgress": 20,
        }

    async def test_progress_out_of_range(self, client: AsyncClient) -> None:
        """Progress is a percentage."""
        response = await client.post("/api/skills", json={"name": "Go", "progress": 120})
        assert response.status_code == 400

    async def test_progress_change_publishes_old_and_new(
        self, client: AsyncClient, broker: EventBroker
    ) -> None:
        """Updating progress publishes the before and after values."""
        skill = await create_skill(client, progress=10)
        response = await client.patch(f"/api/skills/{skill['id']}", json={"progress": 40})
        assert response.json()["progress"] == 40

        event = broker.recent_events("user-1", RealtimeEventType.SKILL_PROGRESS)[0]
        assert event.payload["oldProgress"] == 10
        assert event.payload["newProgress"] == 40
        assert event.payload["action"] == "updated"

    async def test_update_without_progress_change_is_silent(
        self, client: AsyncClient, broker: EventBroker
    ) -> None:
        """Renaming a skill publishes no skill-progress event."""
        skill = await create_skill(client)
        before = broker.last_event_id
        await client.patch(f"/api/skills/{skill['id']}", json={"name": "Python 3"})
        assert broker.last_event_id == before

    async def test_level_up_records_activity(
        self, client: AsyncClient, broker: EventBroker
    ) -> None:
        """Reaching a quarter mark records a level-up activity."""
        skill = await create_skill(client, progress=40)
        await client.patch(f"/api/skills/{skill['id']}", json={"progress": 50})

        feed = (await client.get("/api/activities", params={"type": "SKILL_LEVEL_UP"})).json()
        assert [item["title"] for item in feed["data"]] == ["Reached 50% in Python"]
        activity = broker.recent_events("user-1", RealtimeEventType.ACTIVITY)[0]
        assert activity.payload["action"] == "SKILL_LEVEL_UP"

    async def test_list_sorted_by_progress(self, client: AsyncClient) -> None:
        """Skills can be sorted by progress."""
        await create_skill(client, name="A", progress=30)
        await create_skill(client, name="B", progress=90)
        await create_skill(client, name="C", progress=60)
        body = (
            await client.get("/api/skills", params={"sortBy": "progress", "sortOrder": "asc"})
        ).json()
        assert [item["name"] for item in body["data"]] == ["A", "C", "B"]

    async def test_cached_list_reflects_update(self, client: AsyncClient) -> None:
        """A cached list is invalidated by a progress update."""
        skill = await create_skill(client, progress=10)
        first = (await client.get("/api/skills")).json()
        assert first["data"][0]["progress"] == 10

        await client.patch(f"/api/skills/{skill['id']}", json={"progress": 80})

        second = (await client.get("/api/skills")).json()
        assert second["data"][0]["progress"] == 80

    async def test_delete(self, client: AsyncClient, broker: EventBroker) -> None:
        """Deleting publishes skill-progress with action deleted."""
        skill = await create_skill(client, progress=30)
        assert (await client.delete(f"/api/skills/{skill['id']}")).json() == {"success": True}
        assert (await client.get(f"/api/skills/{skill['id']}")).status_code == 404
        event = broker.recent_events("user-1", RealtimeEventType.SKILL_PROGRESS)[0]
        assert event.payload["action"] == "deleted"
        assert event.payload["oldProgress"] == 30

    async def test_other_users_skill(self, client: AsyncClient, other_client: AsyncClient) -> None:
        """Another user's skill is forbidden."""
        skill = await create_skill(client)
        assert (await other_client.get(f"/api/skills/{skill['id']}")).status_code == 403
