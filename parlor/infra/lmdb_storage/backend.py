import threading

import lmdb


class LMDBBackend:
    """
    Thin synchronous wrapper around an LMDB environment.

    Each logical table (accounts, mailboxes, messages) is a named LMDB
    database. Every method opens its own short transaction; methods taking
    several items apply them in a single write transaction so that they
    become visible together. Callers running on an event loop must invoke
    these methods from a worker thread.
    """
    def __init__(
        self,
        path: str,
        map_size: int = 1 << 30,
        max_dbs: int = 8,
        readahead: bool = True,
        writemap: bool = False,
        sync: bool = True,
        lock: bool = True,
    ) -> None:
        self._env = lmdb.open(
            path,
            map_size=map_size,
            max_dbs=max_dbs,
            lock=lock,
            writemap=writemap,
            sync=sync,
            readahead=readahead,
        )
        self._dbis: dict[bytes, object] = {}
        self._dbis_lock = threading.Lock()

    def get(self, db_name: bytes, key: bytes) -> bytes | None:
        dbi = self._get_dbi(db_name)
        with self._env.begin(db=dbi, write=False) as txn:
            return txn.get(key)

    def put(self, db_name: bytes, key: bytes, value: bytes, overwrite: bool = True) -> bool:
        """
        Store `value` under `key`. With overwrite=False an existing key is
        left untouched and False is returned.
        """
        dbi = self._get_dbi(db_name)
        with self._env.begin(db=dbi, write=True) as txn:
            return txn.put(key, value, overwrite=overwrite)

    def delete(self, db_name: bytes, key: bytes) -> bool:
        dbi = self._get_dbi(db_name)
        with self._env.begin(db=dbi, write=True) as txn:
            return txn.delete(key)

    def write_batch(
        self,
        puts: list[tuple[bytes, bytes, bytes]],
        deletes: list[tuple[bytes, bytes]] | None = None,
    ) -> None:
        """Apply (db, key, value) puts and (db, key) deletes atomically."""
        deletes = deletes or []
        names = {db for db, *_ in puts} | {db for db, _ in deletes}
        dbis = {name: self._get_dbi(name) for name in names}

        with self._env.begin(write=True) as txn:
            for db_name, key in deletes:
                txn.delete(key, db=dbis[db_name])
            for db_name, key, value in puts:
                txn.put(key, value, db=dbis[db_name])

    def delete_prefix(self, db_name: bytes, prefix: bytes) -> int:
        """Delete every key starting with `prefix`, return how many were removed."""
        dbi = self._get_dbi(db_name)
        removed = 0

        with self._env.begin(db=dbi, write=True) as txn:
            with txn.cursor() as cursor:
                if not cursor.set_range(prefix):
                    return 0
                while cursor.key().startswith(prefix):
                    # delete() moves the cursor to the next item
                    if not cursor.delete():
                        break
                    removed += 1
                    if not cursor.key():
                        break

        return removed

    def scan(
        self,
        db_name: bytes,
        prefix: bytes | None = None,
        start: bytes | None = None,
        limit: int | None = None,
    ) -> list[tuple[bytes, bytes]]:
        """
        Return key-value pairs in ascending key order.

        prefix
            Only keys starting with it are returned. The scan stops at
            the first key outside the prefix.
        start
            First key to consider (inclusive lower bound). Defaults to
            `prefix`, or to the first key of the database.
        limit
            Maximum number of items to return; None scans to the end.
        """
        if limit is not None and limit <= 0:
            return []

        dbi = self._get_dbi(db_name)
        items: list[tuple[bytes, bytes]] = []
        first = start if start is not None else prefix

        with self._env.begin(db=dbi, write=False) as txn:
            with txn.cursor() as cursor:
                positioned = cursor.set_range(first) if first is not None else cursor.first()
                if not positioned:
                    return []

                while True:
                    key = cursor.key()
                    if prefix is not None and not key.startswith(prefix):
                        break

                    items.append((key, cursor.value()))
                    if limit is not None and len(items) >= limit:
                        break

                    if not cursor.next():
                        break

        return items

    def close(self) -> None:
        self._dbis.clear()
        self._env.close()

    def _get_dbi(self, name: bytes) -> object:
        with self._dbis_lock:
            dbi = self._dbis.get(name)
            if dbi is None:
                dbi = self._env.open_db(name)
                self._dbis[name] = dbi
            return dbi
