import asyncio
import contextlib
import logging
import signal
import threading
from typing import Iterator

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s:%(funcName)s] : %(message)s"

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@contextlib.contextmanager
def stop_on_signals(signals: tuple[int, ...] = STOP_SIGNALS) -> Iterator[asyncio.Event]:
    """
    Turn the given signals into a stop event while the block runs.

    When the block exits the previous handlers come back, and the first
    signal received is handed to its previous handler if that handler is
    a Python callable (SIGINT's default raises KeyboardInterrupt). Outside
    the main thread no handler can be installed and the event is only set
    by the caller.
    """
    stop = asyncio.Event()
    if threading.current_thread() is not threading.main_thread():
        yield stop
        return

    received: list[int] = []

    def on_signal(signum: int, _) -> None:
        received.append(signum)
        stop.set()

    previous = {signum: signal.signal(signum, on_signal) for signum in signals}
    try:
        yield stop
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

        if received and callable(previous[received[0]]):
            previous[received[0]](received[0], None)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
