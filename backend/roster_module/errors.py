"""Failure types surfaced by the roster layer.

Every failure carries a stable ``code`` so the HTTP layer can render one
discriminated shape (``{"error": code, "detail": message}``) no matter where
it was raised.
"""


class RosterError(Exception):
    code = "roster_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RosterError):
    """A required selection or field is missing or malformed.

    Raised before any store call is made.
    """

    code = "validation_error"
    status_code = 422


class StoreError(RosterError):
    """The external data store rejected or failed a call."""

    code = "store_error"
    status_code = 502


class StaleReferenceError(RosterError):
    """A record id fetched earlier no longer resolves at write time."""

    code = "stale_reference"
    status_code = 409


class NotFoundError(RosterError):
    code = "not_found"
    status_code = 404
