from typing import AsyncIterator, Protocol

from parlor.core.models.message import Message


class MailboxStore(Protocol):
    """
    Per-account message storage shared by all connections.

    Each account owns one mailbox: an append-only, FIFO sequence of
    messages plus the position of the last delivered one. A message lives
    in exactly one mailbox, the receiver's.

    Appends and pulls on the same mailbox must be atomic with respect to
    each other: a pull delivers each message at most once, in send order,
    and never skips a message that was present when it started.
    """

    async def open(self, account: str) -> None:
        """Create an empty mailbox for `account` if it has none."""

    async def append(self, receiver: str, message: Message) -> None:
        """
        Append an unread message to the receiver's mailbox.
        Raises UnknownReceiver if the receiver has no mailbox.
        """

    def pull_unread(self, account: str) -> AsyncIterator[Message]:
        """
        Stream the unread messages of `account` in send order, marking
        each one read as it is delivered.

        The set of delivered messages is bounded by what was unread when
        the pull started; messages appended meanwhile wait for the next
        pull. An unknown account yields nothing.
        """

    async def has_unread(self, account: str) -> bool:
        """Return True if at least one message of `account` is unread."""

    async def drop(self, account: str) -> None:
        """Delete the mailbox of `account` and every message it holds."""

    async def close(self) -> None:
        """Release the resources held by the store."""
