"""Cross-platform signal handler setup for graceful shutdown."""

import asyncio
import logging
import signal
from collections.abc import Callable

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def setup_shutdown_signal_handlers(callback: Callable[[], None]) -> Callable[[], None]:
    """Register SIGTERM/SIGINT handlers that invoke callback on signal.

    On Unix, uses the running loop's add_signal_handler(). On Windows,
    falls back to signal.signal() since add_signal_handler() is not supported.

    Returns a function that removes the handlers again.
    """
    loop = asyncio.get_running_loop()

    def _on_signal(sig: signal.Signals) -> None:
        logger.info("Received %s, initiating shutdown", sig.name)
        callback()

    try:
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, _on_signal, sig)
    except NotImplementedError:
        previous = {sig: signal.getsignal(sig) for sig in SHUTDOWN_SIGNALS}

        def _handler(signum, frame):
            # Called outside the loop; hop back onto it
            loop.call_soon_threadsafe(_on_signal, signal.Signals(signum))

        for sig in SHUTDOWN_SIGNALS:
            signal.signal(sig, _handler)

        def _restore() -> None:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

        return _restore

    def _remove() -> None:
        for sig in SHUTDOWN_SIGNALS:
            loop.remove_signal_handler(sig)

    return _remove


__all__ = ["SHUTDOWN_SIGNALS", "setup_shutdown_signal_handlers"]
