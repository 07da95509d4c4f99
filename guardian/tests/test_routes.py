"""Integration tests for the HTTP routes, run against the in-memory store."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from guardian import config
from guardian.auth import hash_password
from guardian.models.child import Child
from guardian.tests.fakes import auth_header, make_room

pytestmark = pytest.mark.asyncio(loop_scope="session")

PASSWORD = "correct-horse"


@pytest.fixture
def family(store):
    """Main parent A, unrelated parents B and C, A's child, and their room."""
    a = store.add_user(first_name="Alice", email="alice@example.com", password_hash=hash_password(PASSWORD))
    b = store.add_user(first_name="Bob", email="bob@example.com")
    c = store.add_user(first_name="Cleo", email="cleo@example.com")
    child = store.add_child(a.id, first_name="Kim", qr_code="kim-qr-code-1")
    room = make_room(a.id, child.id)
    store.rooms[room.id] = room
    return a, b, c, child, room


# ── platform ────────────────────────────────────────────────────────────────


class TestPlatform:
    async def test_health(self, async_client):
        res = await async_client.get("/health")
        assert res.status_code == 200
        assert res.json() == {"status": "ok"}

    async def test_unauthenticated(self, async_client, store):
        """GET /users/profile without a token → 401."""
        res = await async_client.get("/users/profile")
        assert res.status_code == 401

    async def test_garbage_token(self, async_client, store):
        res = await async_client.get("/users/profile", headers={"Authorization": "Bearer nope"})
        assert res.status_code == 401

    async def test_malformed_id_is_bad_request(self, async_client, family):
        """GET /users/not-a-uuid → 400, not 422."""
        a, *_ = family
        res = await async_client.get("/users/not-a-uuid", headers=auth_header(a))
        assert res.status_code == 400
        assert res.json()["detail"][0]["loc"] == ["path", "user_id"]


# ── auth ────────────────────────────────────────────────────────────────────


class TestAuthRoutes:
    async def test_register(self, async_client, store):
        """POST /auth/register → 201 with the public user, camelCase, no secrets."""
        res = await async_client.post(
            "/auth/register",
            json={"firstName": "Pat", "lastName": "Parent", "email": "pat@example.com", "password": PASSWORD},
        )
        assert res.status_code == 201
        user = res.json()["user"]
        assert user["email"] == "pat@example.com"
        assert user["isVerified"] is False
        assert "passwordHash" not in user
        assert "verificationCode" not in user

    async def test_register_duplicate(self, async_client, family):
        res = await async_client.post(
            "/auth/register",
            json={"firstName": "A", "lastName": "B", "email": "alice@example.com", "password": PASSWORD},
        )
        assert res.status_code == 409

    async def test_register_sms_needs_phone(self, async_client, store):
        res = await async_client.post(
            "/auth/register",
            json={
                "firstName": "Pat",
                "lastName": "Parent",
                "email": "pat@example.com",
                "password": PASSWORD,
                "verificationChannel": "sms",
            },
        )
        assert res.status_code == 400

    async def test_register_rejects_unknown_fields(self, async_client, store):
        res = await async_client.post(
            "/auth/register",
            json={"firstName": "P", "lastName": "P", "email": "p@example.com", "password": PASSWORD, "role": "ADMIN"},
        )
        assert res.status_code == 400

    async def test_login(self, async_client, family):
        a, *_ = family
        res = await async_client.post("/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
        assert res.status_code == 200
        body = res.json()
        assert body["tokenType"] == "bearer"
        assert body["user"]["id"] == str(a.id)

        profile = await async_client.get(
            "/users/profile", headers={"Authorization": f"Bearer {body['accessToken']}"}
        )
        assert profile.status_code == 200
        assert profile.json()["firstName"] == "Alice"

    async def test_login_wrong_password(self, async_client, family):
        res = await async_client.post("/auth/login", json={"email": "alice@example.com", "password": "wrong"})
        assert res.status_code == 401

    async def test_login_rate_limited(self, async_client, family, monkeypatch):
        monkeypatch.setattr(config.settings, "LOGIN_RATE_LIMIT_PER_IP", 2)
        for _ in range(2):
            res = await async_client.post("/auth/login", json={"email": "alice@example.com", "password": "wrong"})
            assert res.status_code == 401
        res = await async_client.post("/auth/login", json={"email": "alice@example.com", "password": "wrong"})
        assert res.status_code == 429
        assert res.headers["Retry-After"] == "900"

    async def test_qr_login(self, async_client, family):
        *_, child, _ = family
        res = await async_client.post("/auth/login/qr", json={"qrCode": "kim-qr-code-1"})
        assert res.status_code == 200
        body = res.json()
        assert body["child"]["id"] == str(child.id)
        assert body["child"]["qrCode"] is None

        profile = await async_client.get(
            "/children/profile", headers={"Authorization": f"Bearer {body['accessToken']}"}
        )
        assert profile.status_code == 200
        assert profile.json()["firstName"] == "Kim"

    async def test_verify(self, async_client, store):
        store.add_user(
            email="new@example.com",
            is_verified=False,
            verification_code="424242",
            verification_code_expires_at=datetime.now(UTC) + timedelta(minutes=5),
        )
        res = await async_client.post("/auth/verify", json={"email": "new@example.com", "code": "424242"})
        assert res.status_code == 200
        assert res.json()["user"]["isVerified"] is True
        assert res.json()["accessToken"]

    async def test_verify_needs_identifier(self, async_client, store):
        res = await async_client.post("/auth/verify", json={"code": "424242"})
        assert res.status_code == 400

    async def test_verify_never_signs_in_verified_accounts(self, async_client, store):
        store.add_user(email="root@example.com", role="ADMIN", is_verified=True)
        res = await async_client.post("/auth/verify", json={"email": "root@example.com", "code": "000000"})
        assert res.status_code == 400
        assert "accessToken" not in res.json()

    async def test_forgot_password_is_uniform(self, async_client, family):
        known = await async_client.post("/auth/forgot-password", json={"email": "alice@example.com"})
        unknown = await async_client.post("/auth/forgot-password", json={"email": "ghost@example.com"})
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()

    async def test_reset_password(self, async_client, store, family):
        a, *_ = family
        await async_client.post("/auth/forgot-password", json={"email": "alice@example.com"})
        code = store.users[a.id].password_reset_code

        res = await async_client.post(
            "/auth/reset-password",
            json={"email": "alice@example.com", "code": code, "newPassword": "brand-new-pw"},
        )
        assert res.status_code == 200

        login = await async_client.post("/auth/login", json={"email": "alice@example.com", "password": "brand-new-pw"})
        assert login.status_code == 200


# ── users ───────────────────────────────────────────────────────────────────


class TestUserRoutes:
    async def test_parent_cannot_list(self, async_client, family):
        a, *_ = family
        res = await async_client.get("/users", headers=auth_header(a))
        assert res.status_code == 403

    async def test_admin_crud(self, async_client, store, family):
        _, b, *_ = family
        admin = store.add_user(role="ADMIN")
        headers = auth_header(admin)

        created = await async_client.post(
            "/users",
            json={"firstName": "Dana", "lastName": "D", "email": "dana@example.com", "password": PASSWORD},
            headers=headers,
        )
        assert created.status_code == 201
        dana_id = created.json()["id"]

        listed = await async_client.get("/users", headers=headers)
        assert dana_id in [u["id"] for u in listed.json()]

        deleted = await async_client.delete(f"/users/{b.id}", headers=headers)
        assert deleted.status_code == 200
        assert (await async_client.get(f"/users/{b.id}", headers=headers)).status_code == 404

    async def test_parent_cannot_promote_self(self, async_client, family):
        a, *_ = family
        res = await async_client.patch(f"/users/{a.id}", json={"role": "ADMIN"}, headers=auth_header(a))
        assert res.status_code == 403

    async def test_main_parent_cannot_be_promoted(self, async_client, store, family):
        a, *_ = family
        admin = store.add_user(role="ADMIN")
        res = await async_client.patch(f"/users/{a.id}", json={"role": "ADMIN"}, headers=auth_header(admin))
        assert res.status_code == 409
        assert store.users[a.id].role == "PARENT"

    async def test_parent_updates_self(self, async_client, family):
        a, *_ = family
        res = await async_client.patch(f"/users/{a.id}", json={"firstName": "Ally"}, headers=auth_header(a))
        assert res.status_code == 200
        assert res.json()["firstName"] == "Ally"

    async def test_deleting_main_parent_is_conflict(self, async_client, store, family):
        a, *_ = family
        admin = store.add_user(role="ADMIN")
        res = await async_client.delete(f"/users/{a.id}", headers=auth_header(admin))
        assert res.status_code == 409

    async def test_child_token_has_no_user_profile(self, async_client, family):
        *_, child, _ = family
        res = await async_client.get("/users/profile", headers=auth_header(child))
        assert res.status_code == 403


# ── children ────────────────────────────────────────────────────────────────


class TestChildRoutes:
    async def test_create_provisions_room(self, async_client, store, family):
        a, *_ = family
        res = await async_client.post("/children", json={"firstName": "Lou", "lastName": "Kid"}, headers=auth_header(a))
        assert res.status_code == 201
        body = res.json()
        assert body["parent"]["firstName"] == "Alice"
        assert len(body["qrCode"]) == 32

        room = await async_client.get(f"/messages/room/child/{body['id']}", headers=auth_header(a))
        assert room.status_code == 200
        assert room.json()["child"]["firstName"] == "Lou"

    async def test_child_reads_self_without_qr(self, async_client, family):
        *_, child, _ = family
        res = await async_client.get(f"/children/{child.id}", headers=auth_header(child))
        assert res.status_code == 200
        assert res.json()["qrCode"] is None

    async def test_stranger_cannot_read(self, async_client, family):
        _, b, _, child, _ = family
        res = await async_client.get(f"/children/{child.id}", headers=auth_header(b))
        assert res.status_code == 403

    async def test_location(self, async_client, family):
        *_, child, _ = family
        res = await async_client.patch(
            f"/children/{child.id}/location", json={"lat": 48.85, "lng": 2.35}, headers=auth_header(child)
        )
        assert res.status_code == 200
        assert res.json()["location"]["lat"] == 48.85

    async def test_location_out_of_range(self, async_client, family):
        *_, child, _ = family
        res = await async_client.patch(
            f"/children/{child.id}/location", json={"lat": 123, "lng": 2.35}, headers=auth_header(child)
        )
        assert res.status_code == 400

    async def test_link_parent(self, async_client, family):
        a, b, _, child, _ = family
        linked = await async_client.post(f"/children/{child.id}/parents/{b.id}", headers=auth_header(a))
        assert linked.status_code == 200
        assert [p["firstName"] for p in linked.json()["linkedParents"]] == ["Bob"]

        again = await async_client.post(f"/children/{child.id}/parents/{b.id}", headers=auth_header(a))
        assert again.status_code == 409

        # Linked parents see the child, not the room.
        assert (await async_client.get(f"/children/{child.id}", headers=auth_header(b))).status_code == 200
        assert (await async_client.get(f"/messages/room/child/{child.id}", headers=auth_header(b))).status_code == 403

    async def test_delete_cascades(self, async_client, store, family):
        a, *_, child, room = family
        res = await async_client.delete(f"/children/{child.id}", headers=auth_header(a))
        assert res.status_code == 200
        assert room.id not in store.rooms
        assert (await async_client.get(f"/messages/room/{room.id}", headers=auth_header(a))).status_code == 404


# ── messages and rooms ──────────────────────────────────────────────────────


class TestRoomRoutes:
    async def test_invite_scenario(self, async_client, family):
        """A invites B; B reads; B cannot invite C; A removes B; B is locked out."""
        a, b, c, _, room = family

        invited = await async_client.post(f"/messages/room/{room.id}/invite/{b.id}", headers=auth_header(a))
        assert invited.status_code == 200
        assert [p["id"] for p in invited.json()["invitedParents"]] == [str(b.id)]

        assert (await async_client.get(f"/messages/room/{room.id}", headers=auth_header(b))).status_code == 200

        by_b = await async_client.post(f"/messages/room/{room.id}/invite/{c.id}", headers=auth_header(b))
        assert by_b.status_code == 403

        duplicate = await async_client.post(f"/messages/room/{room.id}/invite/{b.id}", headers=auth_header(a))
        assert duplicate.status_code == 409

        removed = await async_client.delete(f"/messages/room/{room.id}/invite/{b.id}", headers=auth_header(a))
        assert removed.status_code == 200
        assert removed.json()["invitedParents"] == []

        assert (await async_client.get(f"/messages/room/{room.id}", headers=auth_header(b))).status_code == 403

    async def test_list_rooms_for_parent(self, async_client, family):
        a, b, _, _, room = family
        res = await async_client.get(f"/messages/rooms/parent/{a.id}", headers=auth_header(a))
        assert res.status_code == 200
        assert [r["id"] for r in res.json()] == [str(room.id)]

        other = await async_client.get(f"/messages/rooms/parent/{a.id}", headers=auth_header(b))
        assert other.status_code == 403

    async def test_child_room_created_on_first_access(self, async_client, store, family):
        a, *_ = family
        newcomer = store.add_child(a.id)
        res = await async_client.get(f"/messages/room/child/{newcomer.id}", headers=auth_header(newcomer))
        assert res.status_code == 200
        assert res.json()["parent"]["id"] == str(a.id)


class TestMessageRoutes:
    async def _post_text(self, async_client, room, sender, text):
        model = "Child" if isinstance(sender, Child) else "User"
        return await async_client.post(
            f"/messages/room/{room.id}/text",
            json={"text": text, "senderModel": model, "senderId": str(sender.id)},
            headers=auth_header(sender),
        )

    async def test_text_and_preview(self, async_client, family):
        a, *_, room = family
        res = await self._post_text(async_client, room, a, "hello")
        assert res.status_code == 201
        body = res.json()
        assert body["type"] == "TEXT"
        assert body["roomId"] == str(room.id)

        room_res = await async_client.get(f"/messages/room/{room.id}", headers=auth_header(a))
        assert room_res.json()["lastMessage"]["text"] == "hello"
        assert room_res.json()["lastMessage"]["senderModel"] == "User"

    async def test_sender_must_belong_to_room(self, async_client, family):
        a, b, *_, room = family
        res = await async_client.post(
            f"/messages/room/{room.id}/text",
            json={"text": "hi", "senderModel": "User", "senderId": str(b.id)},
            headers=auth_header(a),
        )
        assert res.status_code == 403

    async def test_empty_text_is_bad_request(self, async_client, family):
        a, *_, room = family
        res = await self._post_text(async_client, room, a, "")
        assert res.status_code == 400

    async def test_history_paging(self, async_client, family):
        a, *_, child, room = family
        for i in range(5):
            await self._post_text(async_client, room, child if i % 2 else a, f"m{i}")

        first = await async_client.get(f"/messages/room/{room.id}/messages?limit=2", headers=auth_header(a))
        assert [m["text"] for m in first.json()] == ["m4", "m3"]

        cursor = first.json()[-1]["id"]
        second = await async_client.get(
            f"/messages/room/{room.id}/messages", params={"limit": 2, "beforeId": cursor}, headers=auth_header(a)
        )
        assert [m["text"] for m in second.json()] == ["m2", "m1"]

    async def test_unknown_cursor(self, async_client, family):
        a, *_, room = family
        res = await async_client.get(
            f"/messages/room/{room.id}/messages", params={"beforeId": str(uuid4())}, headers=auth_header(a)
        )
        assert res.status_code == 400

    async def test_audio_upload(self, async_client, family):
        *_, child, room = family
        res = await async_client.post(
            f"/messages/room/{room.id}/audio",
            files={"file": ("clip.m4a", b"fake-audio-bytes", "audio/mp4")},
            data={"senderModel": "Child", "senderId": str(child.id), "durationSec": "2.5"},
            headers=auth_header(child),
        )
        assert res.status_code == 201
        audio = res.json()["audio"]
        assert audio["url"].startswith("data:audio/mp4;base64,")
        assert audio["durationSec"] == 2.5
        assert audio["sizeBytes"] == len(b"fake-audio-bytes")

        listed = await async_client.get(f"/messages/room/{room.id}/audio?sender=child", headers=auth_header(child))
        assert [m["id"] for m in listed.json()] == [res.json()["id"]]

    async def test_audio_rejects_other_types(self, async_client, family):
        *_, child, room = family
        res = await async_client.post(
            f"/messages/room/{room.id}/audio",
            files={"file": ("pic.png", b"\x89PNG", "image/png")},
            data={"senderModel": "Child", "senderId": str(child.id)},
            headers=auth_header(child),
        )
        assert res.status_code == 400

    async def test_bad_audio_filter(self, async_client, family):
        a, *_, room = family
        res = await async_client.get(f"/messages/room/{room.id}/audio?sender=everyone", headers=auth_header(a))
        assert res.status_code == 400

    async def test_signal(self, async_client, store, family):
        a, *_, room = family
        res = await async_client.post(
            f"/messages/room/{room.id}/signal",
            json={"type": "ICE_CANDIDATE", "senderModel": "User", "senderId": str(a.id), "payload": {"candidate": "x"}},
            headers=auth_header(a),
        )
        assert res.status_code == 201
        assert res.json()["signalingPayload"] == {"candidate": "x"}
        assert store.rooms[room.id].last_message is None

    async def test_unknown_signal_type(self, async_client, family):
        a, *_, room = family
        res = await async_client.post(
            f"/messages/room/{room.id}/signal",
            json={"type": "HANGUP", "senderModel": "User", "senderId": str(a.id), "payload": {}},
            headers=auth_header(a),
        )
        assert res.status_code == 400
