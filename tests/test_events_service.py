"""Tests for the event service — CRUD, cached views, fan-out.

Learn: The service is driven directly with a real session and a FanOut
over fakeredis, so each test can check all three effects of an action:
the row, the cache entries, and the frames that reached the rooms.
"""

import uuid

import pytest

from connectsphere.errors import ForbiddenError, NotFoundError
from connectsphere.realtime.broadcast import event_group, user_group
from connectsphere.realtime.pubsub import attendees_key, event_key
from connectsphere.schemas.event import EventCreate
from connectsphere.services.event_service import EventService
from support import later


@pytest.mark.asyncio
async def test_create_event_caches_and_notifies_creator(db_session, fanout, store, alice, listen):
    tab = listen(user_group(alice.id))
    svc = EventService(db_session, fanout)

    event = await svc.create_event(
        alice.id,
        EventCreate(title="Potluck", starts_at=later(days=3), event_type="potluck"),
    )

    assert event.creator_id == alice.id
    assert event.has_food_or_drinks is True
    cached = await store.get(event_key(event.id))
    assert cached["title"] == "Potluck"
    assert tab.events == ["event-created"]
    assert tab.frames[0]["data"]["creatorId"] == str(alice.id)


@pytest.mark.asyncio
async def test_get_event_reads_through_cache(db_session, fanout, store, event):
    svc = EventService(db_session, fanout)
    await store.delete(event_key(event.id))

    first = await svc.get_event(event.id)
    assert first["title"] == "Summer Party"
    assert await store.get(event_key(event.id)) == first

    # A cached snapshot wins over the database.
    await store.set(event_key(event.id), {**first, "title": "From cache"})
    assert (await svc.get_event(event.id))["title"] == "From cache"


@pytest.mark.asyncio
async def test_get_missing_event_raises(db_session, fanout):
    with pytest.raises(NotFoundError):
        await EventService(db_session, fanout).get_event(uuid.uuid4())


@pytest.mark.asyncio
async def test_update_is_owner_only(db_session, fanout, event, bob):
    with pytest.raises(ForbiddenError):
        await EventService(db_session, fanout).update_event(event.id, bob.id, {"title": "Mine now"})


@pytest.mark.asyncio
async def test_update_refreshes_cache_and_broadcasts(db_session, fanout, store, event, alice, listen):
    room = listen(event_group(event.id))
    await store.set(attendees_key(event.id), {"stale": True})
    svc = EventService(db_session, fanout)

    updated = await svc.update_event(
        event.id, alice.id, {"title": "Autumn Party", "event_type": "drinks"}
    )

    assert updated.title == "Autumn Party"
    assert updated.has_food_or_drinks is True
    assert (await store.get(event_key(event.id)))["title"] == "Autumn Party"
    assert await store.get(attendees_key(event.id)) is None
    assert room.events == ["event-updated"]
    assert room.frames[0]["data"]["title"] == "Autumn Party"


@pytest.mark.asyncio
async def test_update_ignores_null_required_fields_and_unknown_keys(db_session, fanout, event, alice):
    svc = EventService(db_session, fanout)
    updated = await svc.update_event(
        event.id,
        alice.id,
        {"title": None, "description": None, "creator_id": "x", "has_food_or_drinks": True},
    )
    assert updated.title == "Summer Party"
    assert updated.description is None
    assert updated.creator_id == alice.id
    assert updated.has_food_or_drinks is False


@pytest.mark.asyncio
async def test_delete_event_cascades_and_clears_cache(
    db_session, fanout, store, event, alice, bob, rsvp_for, listen
):
    await rsvp_for(bob, event)
    room = listen(event_group(event.id))
    svc = EventService(db_session, fanout)
    await svc.get_event(event.id)

    await svc.delete_event(event.id, alice.id)

    assert await store.get(event_key(event.id)) is None
    assert room.data("event-deleted") == [{"id": str(event.id)}]
    with pytest.raises(NotFoundError):
        await svc.get_event(event.id)


@pytest.mark.asyncio
async def test_update_and_delete_are_published_for_other_processes(
    db_session, fanout, store, event, alice, monkeypatch
):
    published = []

    async def capture(channel, payload):
        published.append((channel, payload))

    monkeypatch.setattr(store, "publish", capture)
    svc = EventService(db_session, fanout)
    await svc.update_event(event.id, alice.id, {"location_text": "Park"})
    await svc.delete_event(event.id, alice.id)

    assert [channel for channel, _ in published] == [f"event:{event.id}:event"] * 2
    updated, deleted = (payload for _, payload in published)
    assert updated["type"] == "EVENT_UPDATED"
    assert updated["data"]["locationText"] == "Park"
    assert updated["origin"] == "test-instance"
    assert deleted["type"] == "EVENT_DELETED"
    assert deleted["data"] == {"id": str(event.id)}


@pytest.mark.asyncio
async def test_delete_is_owner_only(db_session, fanout, event, bob):
    with pytest.raises(ForbiddenError):
        await EventService(db_session, fanout).delete_event(event.id, bob.id)


@pytest.mark.asyncio
async def test_event_with_attendees_lists_yes_only(db_session, fanout, store, event, bob, carol, rsvp_for):
    await rsvp_for(bob, event, "YES")
    await rsvp_for(carol, event, "MAYBE")

    view = await EventService(db_session, fanout).get_event_with_attendees(event.id)

    assert [a["name"] for a in view["attendees"]] == ["Bob"]
    assert (await store.get(attendees_key(event.id)))["attendees"][0]["name"] == "Bob"


@pytest.mark.asyncio
async def test_list_events_filters_and_counts(db_session, fanout, event, alice, bob):
    svc = EventService(db_session, fanout)
    await svc.create_event(bob.id, EventCreate(title="Private", starts_at=later(days=1)))

    public, total = await svc.list_events(is_public=True)
    assert total == 1
    assert [e.title for e in public] == ["Summer Party"]

    mine, total = await svc.list_events(creator_id=bob.id)
    assert total == 1
    assert mine[0].title == "Private"


@pytest.mark.asyncio
async def test_dashboard_groups_events(db_session, fanout, event, alice, bob, rsvp_for):
    svc = EventService(db_session, fanout)
    soon = await svc.create_event(bob.id, EventCreate(title="Soon", starts_at=later(days=2)))
    await rsvp_for(alice, soon, "YES")

    board = await svc.dashboard(alice.id)

    assert [e.title for e in board["created_events"]] == ["Summer Party"]
    assert [e.title for e in board["participating_events"]] == ["Soon"]
    assert [e.title for e in board["upcoming_events"]] == ["Soon", "Summer Party"]


@pytest.mark.asyncio
async def test_list_user_events_includes_rsvps(db_session, fanout, event, bob, rsvp_for):
    await rsvp_for(bob, event, "NO")
    events = await EventService(db_session, fanout).list_user_events(bob.id)
    assert [e.id for e in events] == [event.id]
