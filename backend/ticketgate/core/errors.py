"""Exceptions for faults that are not ordinary business outcomes.

Contention, not-found and already-consumed outcomes are reported through
result objects (see ticketgate.schemas.results); only the cases below raise.
"""


class TicketGateError(Exception):
    """Base class for application errors."""


class MalformedPayloadError(TicketGateError):
    """A signed QR string could not be decoded into a payload."""


class InvalidTransitionError(TicketGateError):
    """A status change outside the legal edges was requested of the store."""

    def __init__(self, kind: str, current: str, target: str):
        super().__init__(f"Illegal {kind} transition {current} -> {target}")
        self.kind = kind
        self.current = current
        self.target = target


class RecordDecodeError(TicketGateError):
    """A persisted row does not satisfy its record schema."""

    def __init__(self, table: str, key: object, detail: str):
        super().__init__(f"Malformed {table} row {key!r}: {detail}")
        self.table = table
        self.key = key


class StoreUnavailableError(TicketGateError):
    """The backing database failed; the outcome of the request is unknown."""
