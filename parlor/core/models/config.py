import ssl
from dataclasses import dataclass

from parlor.core.transport.application import Application


@dataclass
class ServerConfig:
    """
    Static configuration for a ChatServer.

    This structure defines all parameters required to start a server:
    networking, optional TLS, resource limits, and graceful shutdown
    behavior.
    """
    app: Application
    """
    The per-connection application coroutine with the signature:
        async def app(receive, send)
    It receives decoded frames and may send frames back.
    """

    host: str
    """
    IP address or hostname on which the server listens.
    """

    port: int
    """
    TCP port to bind. If set to 0, the OS selects an available port.
    """

    backlog: int = 128
    """
    Maximum number of pending TCP connections waiting for accept().
    """

    ssl_ctx: ssl.SSLContext | None = None
    """
    TLS context used to secure incoming connections, or None for plain TCP.
    """

    limit_concurrency: int = 1024
    """
    Maximum number of concurrent connections. Connections above the limit
    are closed as soon as they are accepted.
    """

    max_buffer_size: int = 4 * 1024 * 1024  # 4MB
    """
    Maximum number of received bytes buffered for a connection before they
    form complete frames. Protects against memory exhaustion.
    """

    max_payload_size: int = 1 * 1024 * 1024  # 1MB
    """
    Maximum payload length a frame header may declare. Larger frames are
    malformed and close the connection.
    """

    idle_timeout: float | None = None
    """
    Seconds of silence after which a connection is closed. Any frame,
    HEARTBEAT included, restarts the countdown. None disables the check.
    """

    timeout_graceful_shutdown: float = 5.0
    """
    Maximum time (in seconds) allowed for graceful shutdown:
    - active connections must close
    - background tasks registered in ServerState.tasks must complete
    After this timeout, remaining tasks are cancelled.
    """
