"""End-to-end HTTP tests for the event, RSVP, chat, poll and participant routes.

Learn: Service behaviour is covered in the test_*_service modules; these
check the HTTP seams: status codes, response shapes, partial-update
bodies, and the mapping of domain errors to {"detail": message}.
"""

import uuid

import pytest

from connectsphere.realtime.broadcast import event_group
from support import auth_headers, later


# ─── Events ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_event_lifecycle(client, alice):
    headers = auth_headers(alice)
    r = await client.post(
        "/api/v1/events",
        json={
            "title": "Dinner",
            "starts_at": later(days=3).isoformat(),
            "location_text": "Luigi's",
            "event_type": "meal",
        },
        headers=headers,
    )
    assert r.status_code == 201
    created = r.json()
    assert created["creator_id"] == str(alice.id)
    assert created["has_food_or_drinks"] is True
    assert created["is_public"] is False

    r = await client.get("/api/v1/events", headers=headers)
    assert r.status_code == 200
    assert r.json()["total"] == 1
    assert [e["id"] for e in r.json()["events"]] == [created["id"]]

    r = await client.patch(
        f"/api/v1/events/{created['id']}", json={"title": "Late dinner"}, headers=headers
    )
    assert r.status_code == 200
    assert r.json()["title"] == "Late dinner"
    assert r.json()["location_text"] == "Luigi's"

    r = await client.delete(f"/api/v1/events/{created['id']}", headers=headers)
    assert r.json() == {"deleted": True}
    r = await client.get(f"/api/v1/events/{created['id']}", headers=headers)
    assert r.status_code == 404
    assert r.json() == {"detail": "Event not found"}


@pytest.mark.asyncio
async def test_create_event_validates_body(client, alice):
    r = await client.post(
        "/api/v1/events",
        json={"title": "", "starts_at": later(days=1).isoformat(), "event_type": "rave"},
        headers=auth_headers(alice),
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_only_owner_can_patch(client, event, bob):
    r = await client.patch(
        f"/api/v1/events/{event.id}", json={"title": "Mine now"}, headers=auth_headers(bob)
    )
    assert r.status_code == 403
    assert "detail" in r.json()


@pytest.mark.asyncio
async def test_attendees_and_dashboard(client, event, alice, bob, rsvp_for):
    await rsvp_for(bob, event, "YES")

    r = await client.get(f"/api/v1/events/{event.id}/attendees", headers=auth_headers(bob))
    assert [a["name"] for a in r.json()["attendees"]] == ["Bob"]

    r = await client.get("/api/v1/events/dashboard", headers=auth_headers(bob))
    data = r.json()
    assert data["created_events"] == []
    assert [e["id"] for e in data["participating_events"]] == [str(event.id)]

    r = await client.get("/api/v1/events/mine", headers=auth_headers(alice))
    assert [e["id"] for e in r.json()] == [str(event.id)]


# ─── RSVP ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_rsvp_upsert_and_counts(client, event, bob):
    headers = auth_headers(bob)
    r = await client.post(
        f"/api/v1/rsvp/{event.id}",
        json={"status": "MAYBE", "allergies": ["peanuts"]},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["status"] == "MAYBE"

    # Fields not sent are left alone.
    r = await client.post(
        f"/api/v1/rsvp/{event.id}", json={"status": "YES", "has_plus_one": True}, headers=headers
    )
    data = r.json()
    assert data["status"] == "YES"
    assert data["allergies"] == ["peanuts"]

    r = await client.get(f"/api/v1/rsvp/{event.id}/counts", headers=headers)
    counts = {c["status"]: c for c in r.json()}
    assert counts["YES"]["count"] == 1
    assert counts["YES"]["plus_ones"] == 1

    r = await client.get(f"/api/v1/rsvp/{event.id}/me", headers=headers)
    assert r.json()["id"] == data["id"]


@pytest.mark.asyncio
async def test_rsvp_rejects_unknown_status(client, event, bob):
    r = await client.post(
        f"/api/v1/rsvp/{event.id}", json={"status": "PERHAPS"}, headers=auth_headers(bob)
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_rsvp_to_missing_event(client, bob):
    r = await client.post(
        f"/api/v1/rsvp/{uuid.uuid4()}", json={"status": "YES"}, headers=auth_headers(bob)
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_remove_rsvp_twice_conflicts(client, event, bob, rsvp_for):
    await rsvp_for(bob, event)
    headers = auth_headers(bob)
    r = await client.delete(f"/api/v1/rsvp/{event.id}", headers=headers)
    assert r.json() == {"deleted": True}
    r = await client.delete(f"/api/v1/rsvp/{event.id}", headers=headers)
    assert r.status_code == 409


# ─── Chat ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_chat_send_list_delete(client, event, bob, rsvp_for, listen):
    await rsvp_for(bob, event)
    room = listen(event_group(event.id))
    headers = auth_headers(bob)

    r = await client.post(f"/api/v1/chat/{event.id}", json={"text": "hello"}, headers=headers)
    assert r.status_code == 201
    message = r.json()
    assert message["user_name"] == "Bob"
    assert room.events == ["new-message"]

    r = await client.get(f"/api/v1/chat/{event.id}", headers=headers)
    assert [m["text"] for m in r.json()] == ["hello"]

    r = await client.delete(f"/api/v1/chat/messages/{message['id']}", headers=headers)
    assert r.json() == {"deleted": True}


@pytest.mark.asyncio
async def test_chat_from_outsider_is_forbidden(client, event, carol):
    r = await client.post(
        f"/api/v1/chat/{event.id}", json={"text": "let me in"}, headers=auth_headers(carol)
    )
    assert r.status_code == 403


# ─── Polls ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_poll_vote_and_close(client, event, alice, bob, rsvp_for):
    await rsvp_for(bob, event)
    r = await client.post(
        f"/api/v1/polls/events/{event.id}",
        json={"question": "Pizza or tacos?", "options": ["Pizza", "Tacos"]},
        headers=auth_headers(alice),
    )
    assert r.status_code == 201
    poll = r.json()
    assert [o["text"] for o in poll["options"]] == ["Pizza", "Tacos"]
    tacos = poll["options"][1]["id"]

    r = await client.post(
        f"/api/v1/polls/{poll['id']}/vote", json={"option_id": tacos}, headers=auth_headers(bob)
    )
    assert r.status_code == 200
    assert [o["vote_count"] for o in r.json()["options"]] == [0, 1]

    r = await client.post(f"/api/v1/polls/{poll['id']}/close", headers=auth_headers(alice))
    assert r.status_code == 200
    assert r.json()["is_closed"] is True
    assert r.json()["winning_option_id"] == tacos

    r = await client.post(f"/api/v1/polls/{poll['id']}/close", headers=auth_headers(alice))
    assert r.status_code == 409
    assert r.json() == {"detail": "Poll is already closed"}

    r = await client.get(f"/api/v1/polls/events/{event.id}", headers=auth_headers(bob))
    assert [p["id"] for p in r.json()] == [poll["id"]]


@pytest.mark.asyncio
async def test_poll_needs_two_options(client, event, alice):
    r = await client.post(
        f"/api/v1/polls/events/{event.id}",
        json={"question": "Only one?", "options": ["Yes"]},
        headers=auth_headers(alice),
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_poll_with_blank_options_is_rejected(client, event, alice):
    r = await client.post(
        f"/api/v1/polls/events/{event.id}",
        json={"question": "Blank?", "options": ["Yes", "   "]},
        headers=auth_headers(alice),
    )
    assert r.status_code == 400
    assert r.json() == {"detail": "A poll needs at least two options"}


@pytest.mark.asyncio
async def test_missing_poll(client, bob):
    r = await client.get(f"/api/v1/polls/{uuid.uuid4()}", headers=auth_headers(bob))
    assert r.status_code == 404


# ─── Participants ────────────────────────────────────────


@pytest.mark.asyncio
async def test_participants_kick_and_leave(client, event, alice, bob, carol, rsvp_for):
    await rsvp_for(bob, event)
    await rsvp_for(carol, event)

    r = await client.get(f"/api/v1/participants/{event.id}", headers=auth_headers(bob))
    assert sorted(p["name"] for p in r.json()) == ["Bob", "Carol"]

    r = await client.delete(
        f"/api/v1/participants/{event.id}/kick/{bob.id}", headers=auth_headers(alice)
    )
    assert r.json() == {"removed": True}

    r = await client.delete(f"/api/v1/participants/{event.id}/leave", headers=auth_headers(carol))
    assert r.json() == {"left": True}

    r = await client.get(f"/api/v1/participants/{event.id}", headers=auth_headers(alice))
    assert r.json() == []


@pytest.mark.asyncio
async def test_non_creator_cannot_kick(client, event, bob, carol, rsvp_for):
    await rsvp_for(carol, event)
    r = await client.delete(
        f"/api/v1/participants/{event.id}/kick/{carol.id}", headers=auth_headers(bob)
    )
    assert r.status_code == 403
