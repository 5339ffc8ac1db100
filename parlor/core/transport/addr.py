import asyncio


def _as_address(value: object) -> tuple[str, int] | None:
    if isinstance(value, (tuple, list)) and len(value) >= 2:
        return str(value[0]), int(value[1])
    return None


def get_remote_addr(transport: asyncio.BaseTransport) -> tuple[str, int] | None:
    """Return (host, port) of the peer, or None when the transport cannot tell."""
    sock = transport.get_extra_info("socket")
    if sock is not None:
        try:
            return _as_address(sock.getpeername())
        except OSError:
            return None

    return _as_address(transport.get_extra_info("peername"))


def get_local_addr(transport: asyncio.BaseTransport) -> tuple[str, int] | None:
    """Return the (host, port) the transport is bound to, or None."""
    sock = transport.get_extra_info("socket")
    if sock is not None:
        try:
            return _as_address(sock.getsockname())
        except OSError:
            return None

    return _as_address(transport.get_extra_info("sockname"))
