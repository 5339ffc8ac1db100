import logging
from collections import defaultdict

from parlor.core.helpers.spawn import TaskSpawner
from parlor.core.models.frame import Frame, SendFrame


class PresenceRegistry:
    """
    Tracks which live connections are logged in as which account, so that
    a new message can be announced to its receiver right away.

    A connection is identified by an opaque id chosen by the caller and is
    bound to at most one account at a time; logging in again moves it.
    Notifications are written through the TaskSpawner: the notifying
    handler never waits on the receiver's transport.
    """

    def __init__(self, spawner: TaskSpawner | None = None) -> None:
        self._spawner = spawner or TaskSpawner()
        self._by_account: dict[str, dict[int, SendFrame]] = defaultdict(dict)
        self._by_connection: dict[int, str] = {}
        self._pushing: set[int] = set()
        self._logger = logging.getLogger("core.service.presence")

    @property
    def spawner(self) -> TaskSpawner:
        return self._spawner

    def register(self, account: str, connection_id: int, send: SendFrame) -> None:
        self.unregister(connection_id)
        self._by_account[account][connection_id] = send
        self._by_connection[connection_id] = account

    def unregister(self, connection_id: int) -> None:
        account = self._by_connection.pop(connection_id, None)
        if account is None:
            return

        connections = self._by_account.get(account)
        if connections is not None:
            connections.pop(connection_id, None)
            if not connections:
                del self._by_account[account]

    def forget(self, account: str) -> None:
        """Detach every connection logged in as `account`."""
        for connection_id in self._by_account.pop(account, {}):
            self._by_connection.pop(connection_id, None)

    def account_of(self, connection_id: int) -> str | None:
        return self._by_connection.get(connection_id)

    def is_online(self, account: str) -> bool:
        return bool(self._by_account.get(account))

    def notify(self, account: str, frame: Frame) -> int:
        """
        Schedule `frame` on every connection logged in as `account` and
        return how many were notified.

        A connection still writing an earlier notification is skipped:
        notifications carry no payload, one pending is as good as many.
        """
        connections = [
            (connection_id, send)
            for connection_id, send in self._by_account.get(account, {}).items()
            if connection_id not in self._pushing
        ]
        for connection_id, send in connections:
            self._pushing.add(connection_id)
            self._spawner.spawn(self._push(connection_id, send, frame))

        if connections:
            self._logger.debug(f"Notified {len(connections)} connection(s) of '{account}'")
        return len(connections)

    async def _push(self, connection_id: int, send: SendFrame, frame: Frame) -> None:
        try:
            await send(frame)
        finally:
            self._pushing.discard(connection_id)
