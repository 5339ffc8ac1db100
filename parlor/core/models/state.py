import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from parlor.core.transport.protocol import ChatProtocol


@dataclass
class ServerState:
    """
    Shared runtime state for a ChatServer.

    This object is mutated by:
    - ChatProtocol: adds/removes active connections, registers the task
      running the application of each connection
    - ChatServer.shutdown(): waits for connections and tasks to complete
    """
    connections: set["ChatProtocol"] = field(default_factory=set)
    """
    Set of active ChatProtocol instances, one per TCP connection.
    """

    tasks: set[asyncio.Task[None]] = field(default_factory=set)
    """
    Set of per-connection application tasks. Each task removes itself via
    task.add_done_callback(tasks.discard) to enable clean shutdown.
    """
