"""Shared route dependencies.

Learn: Long-lived components (FanOut, PollCloseScheduler) are built once in
the app lifespan and parked on app.state. Routes reach them through these
dependencies, so tests can swap them with app.dependency_overrides
without running the lifespan.
"""

from typing import Optional

from fastapi import Request

from connectsphere.services.fanout import FanOut
from connectsphere.services.poll_scheduler import PollCloseScheduler


def get_fanout(request: Request) -> FanOut:
    return request.app.state.fanout


def get_scheduler(request: Request) -> Optional[PollCloseScheduler]:
    return getattr(request.app.state, "poll_scheduler", None)
