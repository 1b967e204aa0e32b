"""Two processes sharing one Redis: the full channel-bus path.

Learn: Process A runs the domain services; process B only holds sockets
and runs the notification worker. Both ChannelStores talk to the same
FakeServer, so a publish from A really travels PSUBSCRIBE → listener →
pattern registry → BroadcastService.mirror / NotificationWorker.handle
on B. A sees its own messages come back and must skip them.
"""

import asyncio

import fakeredis
import pytest
import pytest_asyncio

from connectsphere.realtime.broadcast import BroadcastService, event_group, user_group
from connectsphere.realtime.pubsub import ChannelStore
from connectsphere.services.fanout import FanOut
from connectsphere.services.notification_worker import NotificationWorker
from connectsphere.services.poll_service import PollService
from connectsphere.services.rsvp_service import RsvpService
from support import RecordingConnection


class Process:
    """The realtime half of one server process."""

    def __init__(self, server, instance_id, session_factory):
        client = fakeredis.FakeAsyncRedis(server=server, decode_responses=True)
        self.store = ChannelStore(client, prefix="connectsphere:")
        self.broadcast = BroadcastService(self.store, instance_id=instance_id)
        self.fanout = FanOut(self.store, self.broadcast)
        self.worker = NotificationWorker(self.store, self.broadcast, session_factory)

    async def start(self):
        await self.broadcast.start()
        await self.worker.start()

    async def stop(self):
        await self.worker.stop()
        await self.broadcast.stop()
        await self.store.close()

    def listen(self, group: str) -> RecordingConnection:
        conn = RecordingConnection()
        self.broadcast.connect(conn)
        self.broadcast.join(conn, group)
        return conn


@pytest_asyncio.fixture()
async def processes(session_factory):
    server = fakeredis.FakeServer()
    a = Process(server, "A", session_factory)
    b = Process(server, "B", session_factory)
    await a.start()
    await b.start()
    yield a, b
    await a.stop()
    await b.stop()


async def _until(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("bus message never arrived")
        await asyncio.sleep(0.02)


@pytest.mark.asyncio
async def test_actions_on_one_process_reach_sockets_on_another(
    processes, db_session, event, alice, bob
):
    a, b = processes
    room_a = a.listen(event_group(event.id))
    room_b = b.listen(event_group(event.id))
    host_b = b.listen(user_group(alice.id))
    guest_b = b.listen(user_group(bob.id))

    await RsvpService(db_session, a.fanout).upsert(bob.id, event.id, {"status": "YES"})
    await _until(lambda: len(host_b.data("notification")) == 1)

    polls = PollService(db_session, a.fanout)
    poll = await polls.create_poll(event.id, alice.id, "Where should we meet?", ["Park", "Cafe"])
    await _until(lambda: len(guest_b.data("notification")) == 1)
    park = next(o for o in poll.options if o.text == "Park")
    await polls.vote(poll.id, bob.id, park.id)
    await polls.close_poll(poll.id, alice.id)

    expected = ["rsvp-updated", "poll-created", "poll-vote", "poll-closed", "event-updated"]
    await _until(lambda: room_b.events == expected)
    await _until(lambda: a.broadcast.stats.skipped_own == len(expected))

    # Mirrored frames carry the same payloads the acting process sent.
    assert room_b.data("event-updated")[0]["locationText"] == "Park"
    assert room_a.events == expected
    assert b.broadcast.stats.mirrored == len(expected)
    assert a.broadcast.stats.mirrored == 0

    assert [n["type"] for n in host_b.data("notification")] == ["rsvp"]
    await _until(lambda: len(guest_b.data("notification")) == 2)
    assert [n["type"] for n in guest_b.data("notification")] == ["poll_created", "poll_closed"]


@pytest.mark.asyncio
async def test_each_process_notifies_its_own_sockets(processes, db_session, event, alice, bob):
    """Both workers consume every message; each one reaches only local tabs."""
    a, b = processes
    tab_on_a = a.listen(user_group(alice.id))
    tab_on_b = b.listen(user_group(alice.id))

    await RsvpService(db_session, a.fanout).upsert(bob.id, event.id, {"status": "MAYBE"})

    # handled is counted once the worker's session has closed.
    await _until(lambda: a.worker.stats.handled == 1 and b.worker.stats.handled == 1)
    expected = 'Bob might attend your event "Summer Party"'
    assert [n["message"] for n in tab_on_a.data("notification")] == [expected]
    assert [n["message"] for n in tab_on_b.data("notification")] == [expected]
