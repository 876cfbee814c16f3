"""
core/errors.py -- Error kinds shared by every layer.

Services raise these; api/main.py turns them into the JSON error envelope
with the status code each kind carries. Nothing below the API layer knows
about HTTP beyond that integer.

  Unauthorized           401  missing / invalid / unverifiable credential
  Forbidden              403  valid credential, insufficient role or relation
  NotFound               404  record absent or tombstoned (indistinguishable)
  Conflict               409  uniqueness or membership-state violation
  Mismatch               400  child exists but is addressed via the wrong parent
  PersistenceUnavailable 503  backing store unreachable, never retried here

Layer rule: core/ is the kernel. No imports from api/, auth/ or hub/.
"""


class HubError(Exception):
    """Base class for every error kind the API knows how to render."""

    code = "error"
    status_code = 500
    default_message = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(HubError):
    code = "unauthorized"
    status_code = 401
    default_message = "Authentication required."


class Forbidden(HubError):
    code = "forbidden"
    status_code = 403
    default_message = "You do not have permission to access this resource."


class NotFound(HubError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found."


class Conflict(HubError):
    code = "conflict"
    status_code = 409
    default_message = "Request conflicts with the current state of the resource."


class Mismatch(HubError):
    code = "mismatch"
    status_code = 400
    default_message = "Resource does not belong to the addressed parent."


class PersistenceUnavailable(HubError):
    code = "persistence_unavailable"
    status_code = 503
    default_message = "The data store is unavailable."


class InvalidToken(Exception):
    """Raised by the token verifier. Callers translate it into Unauthorized."""
