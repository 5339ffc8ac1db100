import asyncio
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import AsyncIterator

from parlor.infra.lmdb_storage.backend import LMDBBackend


def increment_key(key: bytes) -> bytes:
    """Return the smallest key sorting strictly after `key`."""
    return key + b"\x00"


class LMDBStorage:
    """
    Asynchronous facade over LMDBBackend.

    LMDB is fully synchronous, so every call is shipped to a thread pool:
    reads go to a small pool of readers, writes to a single writer thread
    which matches LMDB's one-writer model. The event loop never blocks on
    disk I/O.
    """
    def __init__(
        self,
        path: Path,
        map_size: int = 1 << 30,
        max_dbs: int = 8,
        sync: bool = True,
        max_readers: int = 4,
    ) -> None:
        path.mkdir(parents=True, exist_ok=True)
        self._backend = LMDBBackend(
            path=str(path),
            map_size=map_size,
            max_dbs=max_dbs,
            sync=sync,
        )
        self._read_pool = ThreadPoolExecutor(max_workers=max_readers)
        self._write_pool = ThreadPoolExecutor(max_workers=1)
        self._closed = False

    async def get(self, db_name: bytes, key: bytes) -> bytes | None:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._read_pool, self._backend.get, db_name, key
        )

    async def put(self, db_name: bytes, key: bytes, value: bytes, overwrite: bool = True) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._write_pool, self._backend.put, db_name, key, value, overwrite
        )

    async def delete(self, db_name: bytes, key: bytes) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._write_pool, self._backend.delete, db_name, key
        )

    async def write_batch(
        self,
        puts: list[tuple[bytes, bytes, bytes]],
        deletes: list[tuple[bytes, bytes]] | None = None,
    ) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            self._write_pool, self._backend.write_batch, puts, deletes
        )

    async def delete_prefix(self, db_name: bytes, prefix: bytes) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._write_pool, self._backend.delete_prefix, db_name, prefix
        )

    async def iter(
        self,
        db_name: bytes,
        prefix: bytes | None = None,
        start: bytes | None = None,
        batch_size: int = 256,
    ) -> AsyncIterator[tuple[bytes, bytes]]:
        """
        Stream key-value pairs in key order, fetching `batch_size` items
        per worker-thread round trip. No transaction is held between
        batches; each batch resumes right after the last key returned.
        """
        loop = asyncio.get_running_loop()
        next_key = start

        while True:
            batch = await loop.run_in_executor(
                self._read_pool,
                self._backend.scan,
                db_name,
                prefix,
                next_key,
                batch_size,
            )
            if not batch:
                return

            for key, value in batch:
                yield key, value

            if len(batch) < batch_size:
                return

            next_key = increment_key(batch[-1][0])

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        def shutdown() -> None:
            self._read_pool.shutdown(wait=True)
            self._write_pool.shutdown(wait=True)
            self._backend.close()

        await asyncio.to_thread(shutdown)
