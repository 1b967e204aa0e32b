"""Domain error taxonomy.

Learn: Services raise these synchronously; they carry a human-readable
message and nothing transport-specific. The HTTP layer (main.py) maps each
class to a status code. Anything on the asynchronous side of a request
(cache, broadcast, pub/sub, notifications) never raises these upstream.
"""


class ConnectSphereError(Exception):
    """Base class for all domain errors."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ConnectSphereError):
    """Entity missing (event, poll, RSVP, message...)."""

    status_code = 404


class UnauthorizedError(ConnectSphereError):
    """No credential, or the credential is invalid."""

    status_code = 401


class ForbiddenError(ConnectSphereError):
    """Authenticated, but not allowed to perform the action."""

    status_code = 403


class ConflictError(ConnectSphereError):
    """State does not allow the action (poll already closed, duplicate signup)."""

    status_code = 409


class ValidationError(ConnectSphereError):
    """Malformed input the schema layer could not catch (foreign option id...)."""

    status_code = 400
