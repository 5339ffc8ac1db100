import asyncio
import logging
from typing import AsyncIterator

from parlor.core.errors import AccountExists, AccountNotFound, UnknownReceiver
from parlor.core.helpers.lock import RWLock
from parlor.core.models.message import Message
from parlor.core.service.policy import AccountPolicy


async def _iterate(names: list[str]) -> AsyncIterator[str]:
    for name in names:
        yield name


class InMemoryAccountDirectory:
    """
    AccountDirectory kept in a process-local set.

    Lookups and listings share a read lock while creation and deletion take
    the write lock, which makes concurrent creations of the same name
    resolve to exactly one success. Listings return names in ascending
    order from a snapshot taken under the read lock.
    """

    def __init__(self, policy: AccountPolicy | None = None) -> None:
        self._policy = policy or AccountPolicy()
        self._names: set[str] = set()
        self._lock = RWLock()
        self._logger = logging.getLogger("infra.memory_storage")

    async def create(self, name: str) -> None:
        self._policy.validate(name)
        async with self._lock.write():
            if name in self._names:
                raise AccountExists(name)
            self._names.add(name)
        self._logger.debug(f"Account '{name}' created")

    async def exists(self, name: str) -> bool:
        async with self._lock.read():
            return name in self._names

    async def delete(self, name: str) -> None:
        async with self._lock.write():
            if name not in self._names:
                raise AccountNotFound(name)
            self._names.discard(name)
        self._logger.debug(f"Account '{name}' deleted")

    async def list(self, pattern: str) -> AsyncIterator[str]:
        compiled = self._policy.compile(pattern)
        async with self._lock.read():
            names = sorted(n for n in self._names if self._policy.matches(compiled, n))
        return _iterate(names)

    async def close(self) -> None:
        async with self._lock.write():
            self._names.clear()


class _Mailbox:
    __slots__ = ("messages", "pending", "claimed")

    def __init__(self) -> None:
        self.messages: list[Message] = []
        self.pending: list[int] = []
        self.claimed = 0

    @property
    def unread(self) -> int:
        return len(self.pending) + self.claimed


class InMemoryMailboxStore:
    """
    MailboxStore backed by per-account append logs held in memory.

    Each mailbox keeps its messages in send order plus the sorted indexes
    of the unread ones not yet claimed by a pull. A pull claims every such
    index at once, so a concurrent pull of the same account skips them and
    only sees later messages. Indexes a pull claimed but never delivered go
    back to the mailbox when the pull stops. No lock is held while a pull
    is suspended on its consumer.
    """

    def __init__(self) -> None:
        self._boxes: dict[str, _Mailbox] = {}
        self._lock = asyncio.Lock()
        self._logger = logging.getLogger("infra.memory_storage")

    async def open(self, account: str) -> None:
        async with self._lock:
            self._boxes.setdefault(account, _Mailbox())

    async def append(self, receiver: str, message: Message) -> None:
        async with self._lock:
            box = self._boxes.get(receiver)
            if box is None:
                raise UnknownReceiver(receiver)
            box.messages.append(message)
            box.pending.append(len(box.messages) - 1)

    async def pull_unread(self, account: str) -> AsyncIterator[Message]:
        async with self._lock:
            box = self._boxes.get(account)
            if box is None:
                return
            claimed, box.pending = box.pending, []
            box.claimed += len(claimed)

        delivered = 0
        try:
            for index in claimed:
                yield box.messages[index].mark_read()

                # only counted as read once the consumer asked for the next one
                box.messages[index] = box.messages[index].mark_read()
                box.claimed -= 1
                delivered += 1
        finally:
            # runs without awaiting so a cancelled pull still returns its tail
            tail = claimed[delivered:]
            box.claimed -= len(tail)
            box.pending = sorted(box.pending + tail)

    async def has_unread(self, account: str) -> bool:
        async with self._lock:
            box = self._boxes.get(account)
            return box is not None and box.unread > 0

    async def drop(self, account: str) -> None:
        async with self._lock:
            box = self._boxes.pop(account, None)
        if box is not None:
            self._logger.debug(f"Dropped mailbox of '{account}' ({len(box.messages)} message(s))")

    async def close(self) -> None:
        async with self._lock:
            self._boxes.clear()
