import asyncio
import logging
import struct
from contextlib import aclosing
from typing import AsyncIterator

from parlor.core.errors import AccountExists, AccountNotFound, UnknownReceiver
from parlor.core.models.message import Message
from parlor.core.service.policy import AccountPolicy
from parlor.infra.lmdb_storage.aiobackend import LMDBStorage
from parlor.infra.msgpack_serializer import MsgPackSerializer


ACCOUNTS = b"accounts"
MAILBOXES = b"mailboxes"
MESSAGES = b"messages"

_SEQ = struct.Struct("!Q")


class MessageKey:
    """
    Message keys are laid out as:

        account (UTF-8) || 0x00 || seq (uint64 big-endian)

    Account names never contain control characters, so the separator keeps
    one account's keys from interleaving with another's, and a prefix scan
    returns a mailbox in send order.
    """
    SEPARATOR = b"\x00"

    @classmethod
    def prefix(cls, account: str) -> bytes:
        return account.encode("utf-8") + cls.SEPARATOR

    @classmethod
    def build(cls, account: str, seq: int) -> bytes:
        return cls.prefix(account) + _SEQ.pack(seq)

    @staticmethod
    def seq(key: bytes) -> int:
        return _SEQ.unpack(key[-_SEQ.size:])[0]


class LMDBAccountDirectory:
    """
    AccountDirectory persisted in the `accounts` LMDB database.

    Creations and deletions are serialized by an asyncio lock and use
    LMDB's no-overwrite put, so of two concurrent creations of one name
    exactly one succeeds. Listings stream names lazily in key order, which
    for UTF-8 keys is code point order.
    """

    def __init__(
        self,
        storage: LMDBStorage,
        serializer: MsgPackSerializer,
        policy: AccountPolicy | None = None,
    ) -> None:
        self._storage = storage
        self._serializer = serializer
        self._policy = policy or AccountPolicy()
        self._lock = asyncio.Lock()
        self._logger = logging.getLogger("infra.lmdb_storage.directory")

    async def create(self, name: str) -> None:
        self._policy.validate(name)
        record = self._serializer.serialize({"name": name})

        async with self._lock:
            created = await self._storage.put(
                ACCOUNTS, name.encode("utf-8"), record, overwrite=False
            )
        if not created:
            raise AccountExists(name)

        self._logger.debug(f"Account '{name}' created")

    async def exists(self, name: str) -> bool:
        return await self._storage.get(ACCOUNTS, name.encode("utf-8")) is not None

    async def delete(self, name: str) -> None:
        async with self._lock:
            deleted = await self._storage.delete(ACCOUNTS, name.encode("utf-8"))
        if not deleted:
            raise AccountNotFound(name)

        self._logger.debug(f"Account '{name}' deleted")

    async def list(self, pattern: str) -> AsyncIterator[str]:
        compiled = self._policy.compile(pattern)
        return self._iter_matching(compiled)

    async def close(self) -> None:
        await self._storage.close()

    async def _iter_matching(self, compiled) -> AsyncIterator[str]:
        entries = self._storage.iter(ACCOUNTS)
        async with aclosing(entries):
            async for key, _ in entries:
                name = key.decode("utf-8")
                if self._policy.matches(compiled, name):
                    yield name


class LMDBMailboxStore:
    """
    MailboxStore persisted in LMDB.

    Every mailbox has a metadata record in `mailboxes` holding the next
    sequence number to assign. Unread messages live in `messages` under
    MessageKey keys; a message is removed once a pull has delivered it, so
    whatever remains under an account's prefix is unread.

    A pull claims the sequence numbers of every unread message present when
    it starts and no other pull delivers them while the claim lasts. Claims
    are kept in memory only: nothing is in flight after a restart. No lock
    is held while a pull is suspended on its consumer, and sequence numbers
    claimed but never delivered are released when the pull stops.
    """

    def __init__(self, storage: LMDBStorage, serializer: MsgPackSerializer) -> None:
        self._storage = storage
        self._serializer = serializer
        self._lock = asyncio.Lock()
        self._claims: dict[str, set[int]] = {}
        self._logger = logging.getLogger("infra.lmdb_storage.mailbox")

    async def open(self, account: str) -> None:
        record = self._serializer.serialize({"next": 0})
        async with self._lock:
            await self._storage.put(
                MAILBOXES, account.encode("utf-8"), record, overwrite=False
            )

    async def append(self, receiver: str, message: Message) -> None:
        async with self._lock:
            meta = await self._get_meta(receiver)
            if meta is None:
                raise UnknownReceiver(receiver)

            seq = meta["next"]
            meta["next"] = seq + 1
            await self._storage.write_batch([
                (MESSAGES, MessageKey.build(receiver, seq), self._serializer.dump_message(message)),
                (MAILBOXES, receiver.encode("utf-8"), self._serializer.serialize(meta)),
            ])

    async def pull_unread(self, account: str) -> AsyncIterator[Message]:
        async with self._lock:
            meta = await self._get_meta(account)
            if meta is None:
                return
            claims = self._claims.setdefault(account, set())
            claimed = [
                seq async for seq in self._unread_seqs(account, meta["next"])
                if seq not in claims
            ]
            claims.update(claimed)

        try:
            for seq in claimed:
                key = MessageKey.build(account, seq)
                value = await self._storage.get(MESSAGES, key)
                if value is None:
                    continue

                yield self._serializer.load_message(value, read=True)

                await self._storage.delete(MESSAGES, key)
                claims.discard(seq)
        finally:
            claims.difference_update(claimed)

    async def has_unread(self, account: str) -> bool:
        entries = self._storage.iter(MESSAGES, prefix=MessageKey.prefix(account), batch_size=1)
        async with aclosing(entries):
            async for _ in entries:
                return True
        return False

    async def drop(self, account: str) -> None:
        async with self._lock:
            await self._storage.delete(MAILBOXES, account.encode("utf-8"))
            removed = await self._storage.delete_prefix(MESSAGES, MessageKey.prefix(account))
            self._claims.pop(account, None)
        self._logger.debug(f"Dropped mailbox of '{account}' ({removed} message(s))")

    async def close(self) -> None:
        await self._storage.close()

    async def _unread_seqs(self, account: str, end: int) -> AsyncIterator[int]:
        entries = self._storage.iter(MESSAGES, prefix=MessageKey.prefix(account))
        async with aclosing(entries):
            async for key, _ in entries:
                seq = MessageKey.seq(key)
                if seq >= end:
                    return
                yield seq

    async def _get_meta(self, account: str) -> dict | None:
        raw = await self._storage.get(MAILBOXES, account.encode("utf-8"))
        if raw is None:
            return None
        return self._serializer.deserialize(raw)
