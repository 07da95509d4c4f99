"""Tests for the /ws/chat realtime endpoint."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock
from uuid import uuid4

import asyncpg
import pytest
from fastapi.testclient import TestClient

from guardian import config, db
from guardian.main import app
from guardian.services.message_log import message_log
from guardian.tests.fakes import auth_header, make_room


@pytest.fixture
def client(store, monkeypatch):
    """TestClient with the app lifespan running against the in-memory store."""
    monkeypatch.setattr(db, "init_pool", AsyncMock())
    monkeypatch.setattr(db, "close_pool", AsyncMock())
    with TestClient(app) as c:
        yield c


@pytest.fixture
def family(store):
    parent = store.add_user(first_name="Main")
    child = store.add_child(parent.id, first_name="Kid")
    room = make_room(parent.id, child.id)
    store.rooms[room.id] = room
    return parent, child, room


def _token(account) -> str:
    return auth_header(account)["Authorization"].removeprefix("Bearer ")


def _connect(client, account):
    return client.websocket_connect(f"/ws/chat?token={_token(account)}")


def _join(ws, room_id, ref=None):
    ws.send_json({"event": "joinRoom", "data": {"roomId": str(room_id)}, "ref": ref})


class TestConnection:
    def test_authenticated_connect(self, client, family):
        parent, _, _ = family
        with _connect(client, parent) as ws:
            assert ws.receive_json() == {"event": "connected", "data": {"authenticated": True}}

    def test_header_token(self, client, family):
        parent, _, _ = family
        with client.websocket_connect("/ws/chat", headers=auth_header(parent)) as ws:
            assert ws.receive_json()["data"]["authenticated"] is True

    def test_bad_token_stays_connected_unauthenticated(self, client, family):
        with client.websocket_connect("/ws/chat?token=garbage") as ws:
            assert ws.receive_json()["data"]["authenticated"] is False

    def test_unauthenticated_join_is_refused(self, client, family):
        _, _, room = family
        with client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
            _join(ws, room.id, ref="r1")
            error = ws.receive_json()
            assert error["event"] == "error"
            assert error["ref"] == "r1"
            assert error["data"]["event"] == "joinRoom"
            assert error["data"]["status"] == 401


class TestMalformedFrames:
    def test_malformed_json(self, client, family):
        parent, _, _ = family
        with _connect(client, parent) as ws:
            ws.receive_json()
            ws.send_text("{not json")
            error = ws.receive_json()
            assert error["event"] == "error"
            assert error["data"]["status"] == 400

    def test_non_object_frame(self, client, family):
        parent, _, _ = family
        with _connect(client, parent) as ws:
            ws.receive_json()
            ws.send_text(json.dumps([1, 2, 3]))
            assert ws.receive_json()["data"]["status"] == 400

    def test_unknown_event(self, client, family):
        parent, _, _ = family
        with _connect(client, parent) as ws:
            ws.receive_json()
            ws.send_json({"event": "teleport", "data": {}, "ref": 3})
            error = ws.receive_json()
            assert error["data"]["event"] == "teleport"
            assert error["data"]["status"] == 400
            assert error["ref"] == 3

    def test_invalid_payload(self, client, family):
        parent, _, room = family
        with _connect(client, parent) as ws:
            ws.receive_json()
            ws.send_json({"event": "sendText", "data": {"roomId": str(room.id)}})
            error = ws.receive_json()
            assert error["data"]["status"] == 400
            assert isinstance(error["data"]["error"], list)

    def test_connection_survives_errors(self, client, family):
        parent, _, room = family
        with _connect(client, parent) as ws:
            ws.receive_json()
            ws.send_text("oops")
            ws.receive_json()
            _join(ws, room.id, ref=1)
            assert ws.receive_json()["event"] == "presence"
            assert ws.receive_json()["event"] == "ack"


class TestRooms:
    def test_join_broadcasts_presence_then_acks(self, client, family):
        parent, _, room = family
        with _connect(client, parent) as ws:
            ws.receive_json()
            _join(ws, room.id, ref="j")

            presence = ws.receive_json()
            assert presence == {
                "event": "presence",
                "data": {"userId": str(parent.id), "state": "joined", "roomId": str(room.id)},
            }
            ack = ws.receive_json()
            assert ack == {"event": "ack", "ref": "j", "data": {"event": "joinRoom", "ok": True, "roomId": str(room.id)}}

    def test_outsider_cannot_join(self, client, store, family):
        _, _, room = family
        outsider = store.add_user()
        with _connect(client, outsider) as ws:
            ws.receive_json()
            _join(ws, room.id)
            assert ws.receive_json()["data"]["status"] == 403

    def test_unknown_room(self, client, family):
        parent, _, _ = family
        with _connect(client, parent) as ws:
            ws.receive_json()
            _join(ws, uuid4())
            assert ws.receive_json()["data"]["status"] == 404

    def test_unenforced_join_skips_access_check(self, client, store, family, monkeypatch):
        monkeypatch.setattr(config.settings, "WS_ENFORCE_ROOM_ACCESS", False)
        outsider = store.add_user()
        with _connect(client, outsider) as ws:
            ws.receive_json()
            _join(ws, uuid4())
            assert ws.receive_json()["event"] == "presence"
            assert ws.receive_json()["event"] == "ack"

    def test_leave_notifies_remaining_members(self, client, family):
        parent, child, room = family
        with _connect(client, parent) as parent_ws, _connect(client, child) as child_ws:
            parent_ws.receive_json()
            child_ws.receive_json()
            _join(parent_ws, room.id)
            parent_ws.receive_json()
            parent_ws.receive_json()
            _join(child_ws, room.id)
            assert parent_ws.receive_json()["data"]["userId"] == str(child.id)
            child_ws.receive_json()
            child_ws.receive_json()

            child_ws.send_json({"event": "leaveRoom", "data": {"roomId": str(room.id)}})
            left = parent_ws.receive_json()
            assert left["event"] == "presence"
            assert left["data"] == {"userId": str(child.id), "state": "left", "roomId": str(room.id)}
            assert child_ws.receive_json()["event"] == "ack"


class TestMessaging:
    @staticmethod
    def _join_both(parent_ws, child_ws, room):
        parent_ws.receive_json()
        child_ws.receive_json()
        _join(parent_ws, room.id)
        parent_ws.receive_json()
        parent_ws.receive_json()
        _join(child_ws, room.id)
        parent_ws.receive_json()  # child's presence
        child_ws.receive_json()
        child_ws.receive_json()

    def test_send_text_reaches_everyone(self, client, store, family):
        parent, child, room = family
        with _connect(client, parent) as parent_ws, _connect(client, child) as child_ws:
            self._join_both(parent_ws, child_ws, room)
            parent_ws.send_json(
                {
                    "event": "sendText",
                    "data": {"roomId": str(room.id), "text": "dinner!", "senderModel": "User", "senderId": str(parent.id)},
                    "ref": "t1",
                }
            )

            own = parent_ws.receive_json()
            assert own["event"] == "newMessage"
            assert own["data"]["text"] == "dinner!"
            assert own["data"]["senderModel"] == "User"
            ack = parent_ws.receive_json()
            assert ack["event"] == "ack"
            assert ack["data"]["messageId"] == own["data"]["id"]

            received = child_ws.receive_json()
            assert received["event"] == "newMessage"
            assert received["data"]["id"] == own["data"]["id"]
            assert store.rooms[room.id].last_message.text == "dinner!"

    def test_signal_goes_to_the_other_side_only(self, client, store, family):
        parent, child, room = family
        with _connect(client, parent) as parent_ws, _connect(client, child) as child_ws:
            self._join_both(parent_ws, child_ws, room)
            child_ws.send_json(
                {
                    "event": "signal",
                    "data": {
                        "roomId": str(room.id),
                        "senderModel": "Child",
                        "senderId": str(child.id),
                        "type": "CALL_OFFER",
                        "payload": {"sdp": "v=0"},
                    },
                    "ref": "s1",
                }
            )

            assert child_ws.receive_json()["event"] == "ack"
            signal = parent_ws.receive_json()
            assert signal["event"] == "signal"
            assert signal["data"]["type"] == "CALL_OFFER"
            assert signal["data"]["payload"] == {"sdp": "v=0"}
            assert signal["data"]["senderModel"] == "Child"
            # Signals never touch the room preview.
            assert store.rooms[room.id].last_message is None

    def test_impersonation_is_refused(self, client, store, family):
        parent, child, room = family
        with _connect(client, child) as ws:
            ws.receive_json()
            ws.send_json(
                {
                    "event": "sendText",
                    "data": {"roomId": str(room.id), "text": "hi", "senderModel": "User", "senderId": str(parent.id)},
                }
            )
            assert ws.receive_json()["data"]["status"] == 403
        assert store.messages == []

    def test_rest_post_reaches_socket(self, client, family):
        parent, child, room = family
        with _connect(client, child) as ws:
            ws.receive_json()
            _join(ws, room.id)
            ws.receive_json()
            ws.receive_json()

            res = client.post(
                f"/messages/room/{room.id}/text",
                json={"text": "from the app", "senderModel": "User", "senderId": str(parent.id)},
                headers=auth_header(parent),
            )
            assert res.status_code == 201

            pushed = ws.receive_json()
            assert pushed["event"] == "newMessage"
            assert pushed["data"]["id"] == res.json()["id"]


class TestHandlerFailures:
    def test_unexpected_error_keeps_socket_open(self, client, family, monkeypatch):
        parent, _, room = family
        failure = asyncpg.CharacterNotInRepertoireError("invalid byte sequence for encoding UTF8: 0x00")
        monkeypatch.setattr(message_log.messages, "append", AsyncMock(side_effect=failure))

        with _connect(client, parent) as ws:
            ws.receive_json()
            ws.send_json(
                {
                    "event": "sendText",
                    "data": {
                        "roomId": str(room.id),
                        "text": "a\u0000b",
                        "senderModel": "User",
                        "senderId": str(parent.id),
                    },
                    "ref": "t",
                }
            )
            error = ws.receive_json()
            assert error["event"] == "error"
            assert error["ref"] == "t"
            assert error["data"]["status"] == 500

            _join(ws, room.id, ref="j")
            assert ws.receive_json()["event"] == "presence"
            ack = ws.receive_json()
            assert ack["ref"] == "j"
            assert ack["data"]["ok"] is True


class TestRevokedAccess:
    def test_removed_parent_stops_receiving(self, client, store, family):
        parent, _, room = family
        guest = store.add_user(first_name="Guest")
        store.rooms[room.id] = room.model_copy(update={"invited_parent_ids": [guest.id]})

        with _connect(client, guest) as ws:
            ws.receive_json()
            _join(ws, room.id)
            ws.receive_json()
            ws.receive_json()

            res = client.delete(f"/messages/room/{room.id}/invite/{guest.id}", headers=auth_header(parent))
            assert res.status_code == 200
            assert ws.receive_json() == {
                "event": "presence",
                "data": {"userId": str(guest.id), "state": "left", "roomId": str(room.id)},
            }

            posted = client.post(
                f"/messages/room/{room.id}/text",
                json={"text": "secret", "senderModel": "User", "senderId": str(parent.id)},
                headers=auth_header(parent),
            )
            assert posted.status_code == 201

            # Anything broadcast after the removal would arrive before this refusal.
            _join(ws, room.id, ref="again")
            refused = ws.receive_json()
            assert refused["event"] == "error"
            assert refused["data"]["status"] == 403

    def test_deleting_child_empties_its_room(self, client, family):
        parent, child, room = family
        with _connect(client, child) as ws:
            ws.receive_json()
            _join(ws, room.id)
            ws.receive_json()
            ws.receive_json()

            res = client.delete(f"/children/{child.id}", headers=auth_header(parent))
            assert res.status_code == 200
            left = ws.receive_json()
            assert left["event"] == "presence"
            assert left["data"] == {"userId": str(child.id), "state": "left", "roomId": str(room.id)}
