"""Tests for the notification endpoints."""

from httpx import AsyncClient

from edustride.events.broker import EventBroker
from edustride.events.schemas import RealtimeEventType


async def notify(client: AsyncClient, title: str = "Welcome", **values) -> dict:
    response = await client.post(
        "/api/notifications", json={"title": title, "message": "Hello there", **values}
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestNotifications:
    """Test notification create, list, mark read and delete."""

    async def test_create_delivers_in_realtime(
        self, client: AsyncClient, broker: EventBroker
    ) -> None:
        """A new notification is pushed to the user's stream."""
        body = await notify(client, type="success", actionUrl="https://example.com/next")
        assert body["type"] == "SUCCESS"
        assert body["read"] is False

        event = broker.recent_events("user-1", RealtimeEventType.NOTIFICATION)[0]
        assert event.payload == {
            "id": body["id"],
            "title": "Welcome",
            "message": "Hello there",
            "type": "success",
            "read": False,
            "actionUrl": "https://example.com/next",
        }

    async def test_unknown_type_rejected(self, client: AsyncClient) -> None:
        """Only the four levels are accepted."""
        response = await client.post(
            "/api/notifications", json={"title": "x", "message": "y", "type": "urgent"}
        )
        assert response.status_code == 400

    async def test_list_carries_unread_count(self, client: AsyncClient) -> None:
        """List meta includes the unread count."""
        await notify(client, "One")
        await notify(client, "Two")
        body = (await client.get("/api/notifications")).json()
        assert len(body["data"]) == 2
        assert body["meta"]["unreadCount"] == 2
        assert body["meta"]["total"] == 2

    async def test_mark_one_read(self, client: AsyncClient) -> None:
        """Marking one read updates the cached list."""
        first = await notify(client, "One")
        await notify(client, "Two")
        await client.get("/api/notifications")

        response = await client.patch("/api/notifications", json={"notificationId": first["id"]})
        assert response.json() == {"success": True, "updated": 1}

        body = (await client.get("/api/notifications", params={"unreadOnly": "true"})).json()
        assert [item["title"] for item in body["data"]] == ["Two"]
        assert body["meta"]["unreadCount"] == 1

    async def test_mark_all_read(self, client: AsyncClient) -> None:
        """markAllRead marks every unread notification."""
        await notify(client, "One")
        await notify(client, "Two")
        response = await client.patch("/api/notifications", json={"markAllRead": True})
        assert response.json() == {"success": True, "updated": 2}
        body = (await client.get("/api/notifications")).json()
        assert body["meta"]["unreadCount"] == 0

    async def test_mark_read_needs_a_target(self, client: AsyncClient) -> None:
        """An empty mark-read request is rejected."""
        response = await client.patch("/api/notifications", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "notificationId or markAllRead required"

    async def test_mark_other_users_notification(
        self, client: AsyncClient, other_client: AsyncClient
    ) -> None:
        """Another user's notification cannot be marked read."""
        note = await notify(client)
        response = await other_client.patch(
            "/api/notifications", json={"notificationId": note["id"]}
        )
        assert response.status_code == 403

    async def test_delete_one(self, client: AsyncClient) -> None:
        """A notification can be deleted by id."""
        note = await notify(client)
        response = await client.delete("/api/notifications", params={"id": note["id"]})
        assert response.json() == {"success": True, "deleted": 1}
        assert (await client.get("/api/notifications")).json()["data"] == []

    async def test_delete_all_read(self, client: AsyncClient) -> None:
        """deleteAllRead removes only read notifications."""
        read = await notify(client, "Read")
        await notify(client, "Unread")
        await client.patch("/api/notifications", json={"notificationId": read["id"]})

        response = await client.delete("/api/notifications", params={"deleteAllRead": "true"})
        assert response.json() == {"success": True, "deleted": 1}
        body = (await client.get("/api/notifications")).json()
        assert [item["title"] for item in body["data"]] == ["Unread"]

    async def test_delete_needs_a_target(self, client: AsyncClient) -> None:
        """An empty delete request is rejected."""
        response = await client.delete("/api/notifications")
        assert response.status_code == 400
