"""Tests for poll auto-close: timers and the recovery sweep.

Learn: Overdue polls are inserted straight into the database (the API
refuses a past close_at), which is exactly the state a restart leaves
behind when a process dies with timers pending.
"""

import asyncio

import pytest

from connectsphere.db.models import Poll, PollOption
from connectsphere.realtime.broadcast import event_group
from connectsphere.services.poll_scheduler import PollCloseScheduler
from connectsphere.services.poll_service import PollService
from support import later


@pytest.fixture
def make_poll(db_session, alice, event):
    async def _make(close_at, question="Pick one"):
        poll = Poll(
            event_id=event.id,
            created_by=alice.id,
            question=question,
            close_at=close_at,
            options=[PollOption(text="A", position=0), PollOption(text="B", position=1)],
        )
        db_session.add(poll)
        await db_session.commit()
        return poll.id

    return _make


@pytest.fixture
def scheduler(session_factory, fanout):
    return PollCloseScheduler(session_factory, fanout, sweep_interval=60, horizon=600)


@pytest.mark.asyncio
async def test_sweep_closes_overdue_polls(scheduler, make_poll, db_session, fanout, event, listen):
    overdue = await make_poll(later(minutes=-5))
    room = listen(event_group(event.id))

    closed = await scheduler.sweep()

    assert closed == 1
    poll = await PollService(db_session, fanout).get_poll(overdue)
    assert poll.is_closed is True
    assert room.events[0] == "poll-closed"


@pytest.mark.asyncio
async def test_sweep_arms_timers_for_upcoming_polls(scheduler, make_poll):
    soon = await make_poll(later(minutes=5))
    far = await make_poll(later(hours=5))
    no_deadline = await make_poll(None)

    assert await scheduler.sweep() == 0
    assert scheduler.pending == {soon}
    assert far not in scheduler.pending
    assert no_deadline not in scheduler.pending
    await scheduler.stop()


@pytest.mark.asyncio
async def test_schedule_beyond_horizon_is_deferred(scheduler, make_poll):
    poll_id = await make_poll(later(hours=2))
    assert scheduler.schedule(poll_id, later(hours=2)) is False
    assert scheduler.pending == set()


@pytest.mark.asyncio
async def test_timer_closes_poll_when_due(scheduler, make_poll, db_session, fanout):
    poll_id = await make_poll(later(seconds=1))
    assert scheduler.schedule(poll_id, later(milliseconds=50)) is True

    timer = scheduler._timers[poll_id]
    await asyncio.wait_for(timer, timeout=5)

    poll = await PollService(db_session, fanout).get_poll(poll_id)
    assert poll.is_closed is True
    assert scheduler.pending == set()


@pytest.mark.asyncio
async def test_cancel_stops_a_timer(scheduler, make_poll, db_session, fanout):
    poll_id = await make_poll(later(seconds=1))
    scheduler.schedule(poll_id, later(milliseconds=50))
    timer = scheduler._timers[poll_id]

    scheduler.cancel(poll_id)
    await asyncio.gather(timer, return_exceptions=True)

    assert timer.cancelled()
    poll = await PollService(db_session, fanout).get_poll(poll_id)
    assert poll.is_closed is False


@pytest.mark.asyncio
async def test_close_of_already_closed_poll_is_quiet(scheduler, make_poll, db_session, fanout, alice):
    poll_id = await make_poll(later(minutes=1))
    await PollService(db_session, fanout).close_poll(poll_id, alice.id)

    assert await scheduler.close(poll_id) is False


@pytest.mark.asyncio
async def test_manual_close_cancels_timer(scheduler, make_poll, db_session, fanout, alice):
    poll_id = await make_poll(later(minutes=1))
    scheduler.schedule(poll_id, later(minutes=1))

    await PollService(db_session, fanout, scheduler=scheduler).close_poll(poll_id, alice.id)

    assert scheduler.pending == set()


@pytest.mark.asyncio
async def test_start_runs_initial_sweep(scheduler, make_poll, db_session, fanout):
    overdue = await make_poll(later(minutes=-1))

    scheduler.start()
    for _ in range(50):
        poll = await PollService(db_session, fanout).get_poll(overdue)
        if poll.is_closed:
            break
        await asyncio.sleep(0.05)
    await scheduler.stop()

    assert poll.is_closed is True
