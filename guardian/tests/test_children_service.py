"""Tests for child account management."""

from __future__ import annotations

from uuid import uuid4

import pytest

from guardian.errors import Conflict, Forbidden, InvalidInput, NotFound
from guardian.models.child import CreateChildRequest, UpdateChildRequest, UpdateLocationRequest
from guardian.services.children import ChildService, generate_qr_code
from guardian.services.room_registry import RoomRegistry
from guardian.tests.fakes import (
    FakeChildRepo,
    FakeRoomRepo,
    FakeStore,
    FakeUserRepo,
    admin_actor,
    child_actor,
    parent_actor,
)

pytestmark = pytest.mark.asyncio(loop_scope="session")


@pytest.fixture
def family():
    store = FakeStore()
    users = FakeUserRepo(store)
    children = FakeChildRepo(store)
    service = ChildService(children, users, RoomRegistry(FakeRoomRepo(store), children, users))
    parent = store.add_user(first_name="Main")
    return store, service, parent


def test_qr_codes_are_unique_hex():
    codes = {generate_qr_code() for _ in range(50)}
    assert len(codes) == 50
    assert all(len(c) == 32 and int(c, 16) >= 0 for c in codes)


class TestCreate:
    async def test_parent_creates_child_and_room(self, family):
        store, service, parent = family
        child = await service.create(CreateChildRequest(first_name="Kim", last_name="Kid"), parent_actor(parent.id))

        assert child.parent_id == parent.id
        assert child.qr_code
        rooms = [r for r in store.rooms.values() if r.child_id == child.id]
        assert len(rooms) == 1
        assert rooms[0].parent_id == parent.id

    async def test_parent_cannot_create_for_someone_else(self, family):
        store, service, parent = family
        other = store.add_user()
        req = CreateChildRequest(parent_id=other.id, first_name="Kim", last_name="Kid")
        with pytest.raises(Forbidden):
            await service.create(req, parent_actor(parent.id))

    async def test_admin_must_name_parent(self, family):
        _, service, _ = family
        with pytest.raises(InvalidInput):
            await service.create(CreateChildRequest(first_name="Kim", last_name="Kid"), admin_actor())

    async def test_admin_creates_for_parent(self, family):
        _, service, parent = family
        req = CreateChildRequest(parent_id=parent.id, first_name="Kim", last_name="Kid")
        child = await service.create(req, admin_actor())
        assert child.parent_id == parent.id

    async def test_admin_parent_must_be_parent_role(self, family):
        store, service, _ = family
        admin = store.add_user(role="ADMIN")
        req = CreateChildRequest(parent_id=admin.id, first_name="Kim", last_name="Kid")
        with pytest.raises(InvalidInput):
            await service.create(req, admin_actor(admin.id))

    async def test_duplicate_qr_code_is_conflict(self, family):
        _, service, parent = family
        req = CreateChildRequest(first_name="Kim", last_name="Kid", qr_code="shared-code-123")
        await service.create(req, parent_actor(parent.id))
        with pytest.raises(Conflict):
            await service.create(req, parent_actor(parent.id))


class TestRead:
    async def test_parent_lists_linked_children(self, family):
        store, service, parent = family
        other = store.add_user()
        mine = store.add_child(parent.id)
        linked = store.add_child(other.id, linked_parent_ids=[parent.id])
        store.add_child(other.id)

        children = await service.find_all(parent_actor(parent.id))
        assert {c.id for c in children} == {mine.id, linked.id}

    async def test_child_cannot_list(self, family):
        store, service, parent = family
        child = store.add_child(parent.id)
        with pytest.raises(Forbidden):
            await service.find_all(child_actor(child))

    async def test_child_profile(self, family):
        store, service, parent = family
        child = store.add_child(parent.id)
        assert (await service.get_profile(child_actor(child))).id == child.id
        with pytest.raises(Forbidden):
            await service.get_profile(parent_actor(parent.id))

    async def test_find_one_missing(self, family):
        _, service, parent = family
        with pytest.raises(NotFound):
            await service.find_one(uuid4(), parent_actor(parent.id))

    async def test_children_never_see_their_qr_code(self, family):
        store, service, parent = family
        child = store.add_child(parent.id, qr_code="secret-qr-code")
        as_child = await service.render(child, child_actor(child))
        as_parent = await service.render(child, parent_actor(parent.id))
        assert as_child.qr_code is None
        assert as_parent.qr_code == "secret-qr-code"
        assert as_parent.parent.first_name == "Main"


class TestUpdate:
    async def test_update_keeps_unset_fields(self, family):
        store, service, parent = family
        child = store.add_child(parent.id, first_name="Kim", avatar_url="https://img/1.png")

        updated = await service.update(child.id, UpdateChildRequest(last_name="New"), parent_actor(parent.id))

        assert updated.last_name == "New"
        assert updated.first_name == "Kim"
        assert updated.avatar_url == "https://img/1.png"

    async def test_nullable_field_can_be_cleared(self, family):
        store, service, parent = family
        child = store.add_child(parent.id, avatar_url="https://img/1.png")
        req = UpdateChildRequest.model_validate({"avatarUrl": None})
        updated = await service.update(child.id, req, parent_actor(parent.id))
        assert updated.avatar_url is None

    async def test_child_updates_own_location(self, family):
        store, service, parent = family
        child = store.add_child(parent.id)
        updated = await service.update_location(child.id, UpdateLocationRequest(lat=52.5, lng=13.4), child_actor(child))
        assert updated.location.lat == 52.5
        assert updated.location.updated_at is not None

    async def test_stranger_cannot_update(self, family):
        store, service, parent = family
        stranger = store.add_user()
        child = store.add_child(parent.id)
        with pytest.raises(Forbidden):
            await service.update(child.id, UpdateChildRequest(first_name="X"), parent_actor(stranger.id))


class TestDelete:
    async def test_delete_cascades_room(self, family):
        store, service, parent = family
        child = await service.create(CreateChildRequest(first_name="Kim", last_name="Kid"), parent_actor(parent.id))
        await service.delete(child.id, parent_actor(parent.id))
        assert child.id not in store.children
        assert not any(r.child_id == child.id for r in store.rooms.values())

    async def test_linked_parent_cannot_delete(self, family):
        store, service, parent = family
        other = store.add_user()
        child = store.add_child(parent.id, linked_parent_ids=[other.id])
        with pytest.raises(Forbidden):
            await service.delete(child.id, parent_actor(other.id))


class TestLinking:
    async def test_link_and_unlink(self, family):
        store, service, parent = family
        other = store.add_user()
        child = store.add_child(parent.id)

        linked = await service.link_parent(child.id, other.id, parent_actor(parent.id))
        assert linked.linked_parent_ids == [other.id]

        unlinked = await service.unlink_parent(child.id, other.id, parent_actor(parent.id))
        assert unlinked.linked_parent_ids == []

    async def test_linking_twice_is_conflict(self, family):
        store, service, parent = family
        other = store.add_user()
        child = store.add_child(parent.id)
        await service.link_parent(child.id, other.id, parent_actor(parent.id))
        with pytest.raises(Conflict):
            await service.link_parent(child.id, other.id, parent_actor(parent.id))

    async def test_linking_main_parent_is_conflict(self, family):
        store, service, parent = family
        child = store.add_child(parent.id)
        with pytest.raises(Conflict):
            await service.link_parent(child.id, parent.id, admin_actor())

    async def test_linked_parent_cannot_link_others(self, family):
        store, service, parent = family
        other = store.add_user()
        third = store.add_user()
        child = store.add_child(parent.id, linked_parent_ids=[other.id])
        with pytest.raises(Forbidden):
            await service.link_parent(child.id, third.id, parent_actor(other.id))

    async def test_unlinking_non_member_is_noop(self, family):
        store, service, parent = family
        child = store.add_child(parent.id)
        result = await service.unlink_parent(child.id, uuid4(), parent_actor(parent.id))
        assert result.id == child.id
