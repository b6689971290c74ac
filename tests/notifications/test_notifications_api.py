"""HTTP tests for the notification inbox."""

import pytest

from shinobi.notifications.service import CHALLENGE_REMINDER, create_notification


async def seed(db, user_id, n):
    for i in range(n):
        await create_notification(db, user_id, CHALLENGE_REMINDER, f"Reminder {i}", "Practice today")
    await db.commit()


class TestNotificationsApi:
    @pytest.mark.asyncio
    async def test_list_paginated(self, client, db_session, bob, headers_for):
        await seed(db_session, bob.id, 3)

        resp = await client.get("/api/v1/notifications", params={"per_page": 2}, headers=headers_for(bob))

        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 3
        assert len(data["notifications"]) == 2
        assert data["notifications"][0]["read"] is False

    @pytest.mark.asyncio
    async def test_mark_one_and_all_read(self, client, db_session, bob, headers_for):
        await seed(db_session, bob.id, 3)
        headers = headers_for(bob)
        first = (await client.get("/api/v1/notifications", headers=headers)).json()["notifications"][0]

        resp = await client.post(f"/api/v1/notifications/{first['id']}/read", headers=headers)
        assert resp.status_code == 200
        count = await client.get("/api/v1/notifications/unread-count", headers=headers)
        assert count.json()["unread_count"] == 2

        marked = await client.post("/api/v1/notifications/read-all", headers=headers)
        assert marked.json() == {"updated": 2}
        count = await client.get("/api/v1/notifications/unread-count", headers=headers)
        assert count.json()["unread_count"] == 0

    @pytest.mark.asyncio
    async def test_cannot_read_other_users_notification(self, client, db_session, alice, bob, headers_for):
        await seed(db_session, alice.id, 1)
        theirs = (await client.get("/api/v1/notifications", headers=headers_for(alice))).json()["notifications"][0]

        resp = await client.post(f"/api/v1/notifications/{theirs['id']}/read", headers=headers_for(bob))
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_requires_auth(self, client, db_session):
        resp = await client.get("/api/v1/notifications")
        assert resp.status_code == 401
