"""ConnectSphere CLI — plan events, RSVP, chat and vote from the terminal.

Usage:
    connectsphere login you@example.com                # Save an access token
    connectsphere events                               # Public events
    connectsphere dashboard                            # Your created / joined / upcoming
    connectsphere create-event "Picnic" 2026-07-01T12:00Z --location "Park"
    connectsphere rsvp EVENT_ID YES --plus-one "Sam"   # Create or update an RSVP
    connectsphere send EVENT_ID "see you there"        # Post a chat message
    connectsphere polls EVENT_ID                       # Polls with vote counts
    connectsphere vote POLL_ID OPTION_ID
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from pathlib import Path
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:3000"
TOKEN_FILE = Path.home() / ".connectsphere" / "token"


def _api_url() -> str:
    return os.environ.get("CONNECTSPHERE_API_URL", DEFAULT_API_URL).rstrip("/")


def _token() -> Optional[str]:
    """Access token from CONNECTSPHERE_TOKEN, else the one saved by `login`."""
    token = os.environ.get("CONNECTSPHERE_TOKEN")
    if token:
        return token
    if TOKEN_FILE.exists():
        return TOKEN_FILE.read_text().strip() or None
    return None


def _save_token(token: str) -> None:
    TOKEN_FILE.parent.mkdir(parents=True, exist_ok=True)
    TOKEN_FILE.write_text(token)
    TOKEN_FILE.chmod(0o600)


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the ConnectSphere backend."""
    headers = {}
    token = _token()
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return httpx.AsyncClient(base_url=f"{_api_url()}/api/v1", headers=headers, timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _check(r: httpx.Response) -> dict | list:
    """Return the JSON body, or print the API's detail and exit."""
    if r.is_error:
        try:
            detail = r.json().get("detail", r.text)
        except ValueError:
            detail = r.text
        click.secho(f"Error {r.status_code}: {detail}", fg="red", err=True)
        sys.exit(1)
    return r.json()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k, "-"))[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


def _status_color(status: str) -> str:
    """Map RSVP statuses to click colors."""
    return {"YES": "green", "MAYBE": "yellow", "NO": "red"}.get(status, "white")


EVENT_COLUMNS = [
    ("ID", "id", 36),
    ("Title", "title", 30),
    ("Starts", "starts_at", 25),
    ("Location", "location_text", 20),
]


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="connectsphere")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON responses.")
@click.pass_context
def cli(ctx: click.Context, as_json: bool):
    """ConnectSphere — event planning with RSVPs, polls and chat."""
    ctx.ensure_object(dict)
    ctx.obj["json"] = as_json


def _emit(ctx: click.Context, data: dict | list) -> bool:
    """Print JSON when --json was given. Returns True if it did."""
    if ctx.obj.get("json"):
        click.echo(_pretty_json(data))
        return True
    return False


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("email")
@click.option("--name", prompt=True, help="Display name.")
@click.password_option()
def register(email: str, name: str, password: str):
    """Create an account and save its access token."""
    _run(_register_impl(email, name, password))


async def _register_impl(email: str, name: str, password: str):
    async with _client() as c:
        data = _check(await c.post("/auth/register", json={
            "email": email, "name": name, "password": password,
        }))
    _save_token(data["access_token"])
    click.secho(f"Registered {data['user']['email']} ({data['user']['id']})", fg="green")


@cli.command()
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True)
def login(email: str, password: str):
    """Log in and save the access token."""
    _run(_login_impl(email, password))


async def _login_impl(email: str, password: str):
    async with _client() as c:
        data = _check(await c.post("/auth/login", json={"email": email, "password": password}))
    _save_token(data["access_token"])
    click.secho(f"Logged in. Token saved to {TOKEN_FILE}", fg="green")


@cli.command()
def whoami():
    """Show the logged-in user."""
    _run(_whoami_impl())


async def _whoami_impl():
    async with _client() as c:
        user = _check(await c.get("/auth/me"))
    click.echo(f"{user['name']} <{user['email']}>  {user['id']}")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--mine", is_flag=True, help="Events you created or joined.")
@click.option("--upcoming", is_flag=True, help="With --mine: only future events.")
@click.option("--limit", default=20, help="Max events to show.")
@click.pass_context
def events(ctx: click.Context, mine: bool, upcoming: bool, limit: int):
    """List public events, or your own with --mine."""
    _run(_events_impl(ctx, mine, upcoming, limit))


async def _events_impl(ctx: click.Context, mine: bool, upcoming: bool, limit: int):
    async with _client() as c:
        if mine:
            rows = _check(await c.get("/events/mine", params={"upcoming": upcoming}))
        else:
            data = _check(await c.get("/events", params={"is_public": True, "limit": limit}))
            rows = data["events"]
    if _emit(ctx, rows):
        return
    if not rows:
        click.echo("No events.")
        return
    _print_table(rows[:limit], EVENT_COLUMNS)


@cli.command()
@click.pass_context
def dashboard(ctx: click.Context):
    """Your created, participating and next-7-days events."""
    _run(_dashboard_impl(ctx))


async def _dashboard_impl(ctx: click.Context):
    async with _client() as c:
        data = _check(await c.get("/events/dashboard"))
    if _emit(ctx, data):
        return
    for label, key in (
        ("Created", "created_events"),
        ("Participating", "participating_events"),
        ("Upcoming (7 days)", "upcoming_events"),
    ):
        click.secho(f"{label} ({len(data[key])})", bold=True)
        for e in data[key]:
            click.echo(f"  {e['starts_at']}  {e['title']}  [{e['id']}]")
        click.echo()


@cli.command()
@click.argument("event_id")
@click.pass_context
def event(ctx: click.Context, event_id: str):
    """Show one event with its attendees."""
    _run(_event_impl(ctx, event_id))


async def _event_impl(ctx: click.Context, event_id: str):
    async with _client() as c:
        data = _check(await c.get(f"/events/{event_id}/attendees"))
    if _emit(ctx, data):
        return
    click.secho(data["title"], bold=True)
    click.echo(f"  When:   {data['starts_at']}")
    click.echo(f"  Where:  {data['location_text'] or '-'}")
    click.echo(f"  Public: {data['is_public']}")
    if data.get("description"):
        click.echo(f"  {data['description']}")
    click.echo()
    click.secho(f"Attendees ({len(data['attendees'])})", bold=True)
    for a in data["attendees"]:
        plus = f" +1 {a['plus_one_name'] or ''}".rstrip() if a["has_plus_one"] else ""
        click.echo(f"  {a['name']}{plus}")


@cli.command("create-event")
@click.argument("title")
@click.argument("starts_at")
@click.option("--location", default="", help="Free-text location.")
@click.option("--description", default=None)
@click.option("--public", "is_public", is_flag=True, help="List the event publicly.")
@click.option("--type", "event_type", default="other", help="party, meetup, dinner...")
def create_event(title: str, starts_at: str, location: str, description: Optional[str],
                 is_public: bool, event_type: str):
    """Create an event. STARTS_AT is an ISO-8601 timestamp."""
    _run(_create_event_impl(title, starts_at, location, description, is_public, event_type))


async def _create_event_impl(title: str, starts_at: str, location: str,
                             description: Optional[str], is_public: bool, event_type: str):
    body: dict = {
        "title": title,
        "starts_at": starts_at,
        "location_text": location,
        "is_public": is_public,
        "event_type": event_type,
    }
    if description:
        body["description"] = description
    async with _client() as c:
        data = _check(await c.post("/events", json=body))
    click.secho(f"Event created: {data['id']}", fg="green")


@cli.command("delete-event")
@click.argument("event_id")
@click.confirmation_option(prompt="Delete this event and everything in it?")
def delete_event(event_id: str):
    """Delete an event you created."""
    _run(_delete_event_impl(event_id))


async def _delete_event_impl(event_id: str):
    async with _client() as c:
        _check(await c.delete(f"/events/{event_id}"))
    click.secho("Event deleted.", fg="green")


# ---------------------------------------------------------------------------
# RSVP + participants
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("event_id")
@click.argument("status", type=click.Choice(["YES", "MAYBE", "NO"], case_sensitive=False))
@click.option("--plus-one", default=None, help="Bring a guest (name).")
@click.option("--comment", default=None, help="Note for the host.")
@click.option("--allergy", "allergies", multiple=True, help="Repeat for each allergy.")
def rsvp(event_id: str, status: str, plus_one: Optional[str], comment: Optional[str],
         allergies: tuple[str, ...]):
    """Create or update your RSVP. Fields you don't pass are kept."""
    _run(_rsvp_impl(event_id, status.upper(), plus_one, comment, list(allergies)))


async def _rsvp_impl(event_id: str, status: str, plus_one: Optional[str],
                     comment: Optional[str], allergies: list[str]):
    body: dict = {"status": status}
    if plus_one:
        body["has_plus_one"] = True
        body["plus_one_name"] = plus_one
    if comment is not None:
        body["comment"] = comment
    if allergies:
        body["allergies"] = allergies
    async with _client() as c:
        data = _check(await c.post(f"/rsvp/{event_id}", json=body))
    click.echo("RSVP: " + click.style(data["status"], fg=_status_color(data["status"])))


@cli.command()
@click.argument("event_id")
@click.pass_context
def attendees(ctx: click.Context, event_id: str):
    """RSVP counts and the YES list."""
    _run(_attendees_impl(ctx, event_id))


async def _attendees_impl(ctx: click.Context, event_id: str):
    async with _client() as c:
        counts = _check(await c.get(f"/rsvp/{event_id}/counts"))
        people = _check(await c.get(f"/participants/{event_id}"))
    if _emit(ctx, {"counts": counts, "participants": people}):
        return
    for row in counts:
        status = click.style(row["status"].ljust(5), fg=_status_color(row["status"]))
        click.echo(f"  {status} {row['count']} (+{row['plus_ones']} guests)")
    click.echo()
    _print_table(people, [("ID", "id", 36), ("Name", "name", 24), ("Guest", "plus_one_name", 20)])


@cli.command()
@click.argument("event_id")
@click.argument("user_id")
def kick(event_id: str, user_id: str):
    """Remove a participant from an event you created."""
    _run(_kick_impl(event_id, user_id))


async def _kick_impl(event_id: str, user_id: str):
    async with _client() as c:
        _check(await c.delete(f"/participants/{event_id}/kick/{user_id}"))
    click.secho("Participant removed.", fg="green")


@cli.command()
@click.argument("event_id")
def leave(event_id: str):
    """Leave an event."""
    _run(_leave_impl(event_id))


async def _leave_impl(event_id: str):
    async with _client() as c:
        _check(await c.delete(f"/participants/{event_id}/leave"))
    click.secho("You left the event.", fg="green")


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("event_id")
@click.option("--limit", default=30, help="Most recent N messages.")
@click.pass_context
def messages(ctx: click.Context, event_id: str, limit: int):
    """Show the event chat, oldest first."""
    _run(_messages_impl(ctx, event_id, limit))


async def _messages_impl(ctx: click.Context, event_id: str, limit: int):
    async with _client() as c:
        rows = _check(await c.get(f"/chat/{event_id}", params={"limit": limit}))
    if _emit(ctx, rows):
        return
    for m in rows:
        click.echo(f"[{m['created_at'][:16]}] " + click.style(m["user_name"], bold=True) + f": {m['text']}")


@cli.command()
@click.argument("event_id")
@click.argument("text")
def send(event_id: str, text: str):
    """Post a chat message."""
    _run(_send_impl(event_id, text))


async def _send_impl(event_id: str, text: str):
    async with _client() as c:
        _check(await c.post(f"/chat/{event_id}", json={"text": text}))
    click.secho("Sent.", fg="green")


# ---------------------------------------------------------------------------
# Polls
# ---------------------------------------------------------------------------


def _print_poll(poll: dict) -> None:
    state = click.style("closed", fg="red") if poll["is_closed"] else click.style("open", fg="green")
    click.secho(f"{poll['question']}  [{poll['id']}]", bold=True, nl=False)
    click.echo(f"  {state}")
    for opt in poll["options"]:
        marker = "*" if opt["id"] == poll.get("winning_option_id") else " "
        click.echo(f"  {marker} {opt['text'][:40].ljust(40)} {opt['vote_count']:>3}  {opt['id']}")


@cli.command()
@click.argument("event_id")
@click.pass_context
def polls(ctx: click.Context, event_id: str):
    """List an event's polls with vote counts."""
    _run(_polls_impl(ctx, event_id))


async def _polls_impl(ctx: click.Context, event_id: str):
    async with _client() as c:
        rows = _check(await c.get(f"/polls/events/{event_id}"))
    if _emit(ctx, rows):
        return
    if not rows:
        click.echo("No polls.")
    for poll in rows:
        _print_poll(poll)
        click.echo()


@cli.command("create-poll")
@click.argument("event_id")
@click.argument("question")
@click.option("--option", "-o", "options", multiple=True, required=True,
              help="An answer option; repeat for each.")
@click.option("--close-at", default=None, help="ISO-8601 auto-close time.")
def create_poll(event_id: str, question: str, options: tuple[str, ...], close_at: Optional[str]):
    """Create a poll on an event you own."""
    _run(_create_poll_impl(event_id, question, list(options), close_at))


async def _create_poll_impl(event_id: str, question: str, options: list[str],
                            close_at: Optional[str]):
    body: dict = {"question": question, "options": options}
    if close_at:
        body["close_at"] = close_at
    async with _client() as c:
        poll = _check(await c.post(f"/polls/events/{event_id}", json=body))
    _print_poll(poll)


@cli.command()
@click.argument("poll_id")
@click.argument("option_id")
def vote(poll_id: str, option_id: str):
    """Vote for an option (replaces your previous vote)."""
    _run(_vote_impl(poll_id, option_id))


async def _vote_impl(poll_id: str, option_id: str):
    async with _client() as c:
        poll = _check(await c.post(f"/polls/{poll_id}/vote", json={"option_id": option_id}))
    _print_poll(poll)


@cli.command("close-poll")
@click.argument("poll_id")
def close_poll(poll_id: str):
    """Close a poll now and announce the winner."""
    _run(_close_poll_impl(poll_id))


async def _close_poll_impl(poll_id: str):
    async with _client() as c:
        poll = _check(await c.post(f"/polls/{poll_id}/close"))
    _print_poll(poll)


if __name__ == "__main__":
    cli()
