import logging
from enum import Enum
from typing import Iterable

from parlor.core.models.frame import VERSION


UNKNOWN_OPCODE_LIMIT = 2
"""
Number of unknown opcodes after which the server ends the session.
"""


class SessionPhase(str, Enum):
    AWAIT_VERSION = "await_version"
    ACTIVE = "active"
    ENDED = "ended"


class Session:
    """
    Server-side state of one client connection.

    A session starts in AWAIT_VERSION. The version byte of the first frame
    decides whether it moves to ACTIVE or straight to ENDED, and ENDED is
    terminal. Nothing here is shared between connections or persisted: the
    session lives and dies with its transport.

    The session enforces no ordering between application opcodes. Handlers
    needing an identity (pulling messages) check `account_name` at call
    time instead of relying on a login barrier.
    """

    def __init__(self, compatible_versions: Iterable[int] = (VERSION,)) -> None:
        self.compatible_versions = frozenset(compatible_versions)
        self.phase = SessionPhase.AWAIT_VERSION
        self.unknown_opcode_count = 0
        self.account_name: str | None = None
        self._logger = logging.getLogger("core.session")

    @property
    def version_negotiated(self) -> bool:
        return self.phase is not SessionPhase.AWAIT_VERSION

    @property
    def active(self) -> bool:
        return self.phase is SessionPhase.ACTIVE

    @property
    def terminated(self) -> bool:
        return self.phase is SessionPhase.ENDED

    def negotiate(self, version: int) -> bool:
        """
        Check the version byte of the first frame.

        Returns True and activates the session when the version is
        compatible, otherwise ends the session and returns False.
        """
        if self.phase is not SessionPhase.AWAIT_VERSION:
            raise RuntimeError(f"Version already negotiated, session is {self.phase.value}")

        if version not in self.compatible_versions:
            self._logger.warning(
                f"Incompatible protocol version 0x{version:02x}, "
                f"accepted: {sorted(self.compatible_versions)}"
            )
            self.end()
            return False

        self.phase = SessionPhase.ACTIVE
        return True

    def record_unknown_opcode(self) -> bool:
        """
        Count an unrecognized opcode. Returns True when the limit is
        reached, in which case the session has been ended.
        """
        self.unknown_opcode_count += 1
        if self.unknown_opcode_count >= UNKNOWN_OPCODE_LIMIT:
            self.end()
            return True
        return False

    def login(self, account_name: str) -> None:
        self.account_name = account_name

    def logout(self) -> None:
        self.account_name = None

    def end(self) -> None:
        self.phase = SessionPhase.ENDED

    def __repr__(self) -> str:
        return (
            f"Session(phase={self.phase.value}, account={self.account_name!r}, "
            f"unknown_opcodes={self.unknown_opcode_count})"
        )
