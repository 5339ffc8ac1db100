from dataclasses import dataclass, replace

from parlor.core.models.frame import SendFrame
from parlor.core.ports.directory import AccountDirectory
from parlor.core.ports.mailbox import MailboxStore
from parlor.core.service.presence import PresenceRegistry


@dataclass(frozen=True)
class HandlerContext:
    """
    Collaborators handed to every request handler.

    The directory, mailbox store and presence registry are shared by all
    connections. `connection_id` and `send` identify the connection being
    served; they are filled in by `bind()` when a connection starts.
    """
    directory: AccountDirectory
    mailbox: MailboxStore
    presence: PresenceRegistry

    max_message_length: int = 4096
    """
    Maximum number of characters accepted in a message body.
    """

    connection_id: int = 0
    send: SendFrame | None = None

    def bind(self, connection_id: int, send: SendFrame) -> "HandlerContext":
        return replace(self, connection_id=connection_id, send=send)
