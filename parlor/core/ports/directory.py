from typing import AsyncIterator, Protocol


class AccountDirectory(Protocol):
    """
    Shared registry of every known account name.

    A single instance is used concurrently by all connections, so
    implementations must serialize conflicting operations: of several
    concurrent `create` calls for the same name, exactly one succeeds.

    Naming rules (length, allowed characters, case sensitivity) and the
    pattern language used by `list` are directory policy; the protocol
    only relays the resulting errors to clients.
    """

    async def create(self, name: str) -> None:
        """
        Register a new account.

        Raises InvalidAccountName if the name breaks the directory policy
        and AccountExists if it is already registered.
        """

    async def exists(self, name: str) -> bool:
        """Return True if an account with this exact name is registered."""

    async def delete(self, name: str) -> None:
        """
        Remove an account. Raises AccountNotFound if it is not registered.
        """

    async def list(self, pattern: str) -> AsyncIterator[str]:
        """
        Validate `pattern` and return an iterator over the matching names.

        The pattern is checked before anything is produced: an invalid one
        raises InvalidPattern from this call rather than from the
        iteration. Names come out in a directory-defined order that is
        stable for one call.
        """

    async def close(self) -> None:
        """Release the resources held by the directory."""
