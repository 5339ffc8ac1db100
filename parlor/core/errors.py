class ParlorError(Exception):
    """Base class for every error raised by the Parlor core."""


class MalformedFrame(ParlorError):
    """
    Raised when bytes received from a peer cannot be turned into a valid
    Frame or payload: a declared length above the configured maximum, a
    string sub-length running past the payload, invalid UTF-8, or trailing
    bytes left after the last documented field.

    A malformed frame is transport-fatal: the session ends and the
    connection is closed without any response.
    """


class StoreError(ParlorError):
    """
    Base class for faults reported by the account directory or the
    mailbox store. Handlers translate these into the `*_FAILURE` opcode of
    the request being served, using the exception text as the reason.
    """


class AccountExists(StoreError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Account '{name}' already exists")
        self.name = name


class AccountNotFound(StoreError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Account '{name}' does not exist")
        self.name = name


class InvalidAccountName(StoreError):
    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Invalid account name '{name}': {reason}")
        self.name = name


class InvalidPattern(StoreError):
    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"Invalid pattern '{pattern}': {reason}")
        self.pattern = pattern


class UnknownReceiver(StoreError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown receiver '{name}'")
        self.name = name


class RequestRejected(ParlorError):
    """
    Raised by a handler when a well-formed request cannot be served: an
    empty or oversized message body, or pulling messages without being
    logged in. Reported to the client like a StoreError.
    """
