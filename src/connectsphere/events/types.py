"""Event name constants.

Learn: Centralizing names as constants prevents typos and makes it easy
to discover every event in the system. Two families live here:

1. Channel event types — the `type` tag of payloads published on the
   Redis channel bus (consumed by the notification worker and mirrored by
   the broadcast service in other processes).
2. Socket event names — the exact strings pushed to WebSocket clients.
   The frontend matches on these, so they never change.
"""

# ─── Channel event types (Redis bus) ─────────────────────

RSVP_UPDATED = "RSVP_UPDATED"
RSVP_REMOVED = "RSVP_REMOVED"
NEW_MESSAGE = "NEW_MESSAGE"
MESSAGE_DELETED = "MESSAGE_DELETED"
POLL_CREATED = "POLL_CREATED"
POLL_VOTE = "POLL_VOTE"
POLL_CLOSED = "POLL_CLOSED"
POLL_DELETED = "POLL_DELETED"
PARTICIPANT_KICKED = "PARTICIPANT_KICKED"
PARTICIPANT_LEFT = "PARTICIPANT_LEFT"
EVENT_UPDATED = "EVENT_UPDATED"
EVENT_DELETED = "EVENT_DELETED"

# ─── Socket event names (WebSocket clients) ──────────────

SOCKET_NEW_MESSAGE = "new-message"
SOCKET_MESSAGE_DELETED = "message-deleted"
SOCKET_RSVP_UPDATED = "rsvp-updated"
SOCKET_RSVP_REMOVED = "rsvp-removed"
SOCKET_EVENT_RSVP_UPDATED = "event-rsvp-updated"
SOCKET_EVENT_RSVP_REMOVED = "event-rsvp-removed"
SOCKET_POLL_CREATED = "poll-created"
SOCKET_POLL_VOTE = "poll-vote"
SOCKET_POLL_CLOSED = "poll-closed"
SOCKET_POLL_DELETED = "poll-deleted"
SOCKET_PARTICIPANT_KICKED = "participant-kicked"
SOCKET_KICKED_FROM_EVENT = "kicked-from-event"
SOCKET_PARTICIPANT_LEFT = "participant-left"
SOCKET_PARTICIPANT_LEFT_EVENT = "participant-left-event"
SOCKET_NOTIFICATION = "notification"
SOCKET_EVENT_CREATED = "event-created"
SOCKET_EVENT_UPDATED = "event-updated"
SOCKET_EVENT_DELETED = "event-deleted"

# Channel event → socket event, for events replayed onto the event room
# by processes that did not perform the action themselves.
MIRRORED_TO_EVENT_ROOM: dict[str, str] = {
    RSVP_UPDATED: SOCKET_RSVP_UPDATED,
    RSVP_REMOVED: SOCKET_RSVP_REMOVED,
    NEW_MESSAGE: SOCKET_NEW_MESSAGE,
    MESSAGE_DELETED: SOCKET_MESSAGE_DELETED,
    POLL_CREATED: SOCKET_POLL_CREATED,
    POLL_VOTE: SOCKET_POLL_VOTE,
    POLL_CLOSED: SOCKET_POLL_CLOSED,
    POLL_DELETED: SOCKET_POLL_DELETED,
    PARTICIPANT_KICKED: SOCKET_PARTICIPANT_KICKED,
    PARTICIPANT_LEFT: SOCKET_PARTICIPANT_LEFT,
    EVENT_UPDATED: SOCKET_EVENT_UPDATED,
    EVENT_DELETED: SOCKET_EVENT_DELETED,
}

# ─── Notification kinds (payload `type` of a `notification`) ──

NOTIFY_RSVP = "rsvp"
NOTIFY_NEW_PARTICIPANT = "new_participant"
NOTIFY_CHAT = "chat"
NOTIFY_POLL_CREATED = "poll_created"
NOTIFY_POLL_CLOSED = "poll_closed"
NOTIFY_KICKED = "kicked"
NOTIFY_PARTICIPANT_LEFT = "participant_left"
