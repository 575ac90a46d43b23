"""Tests for shutdown signal handlers."""

import asyncio
import os
import signal
import sys

import pytest

from logscan.signals import setup_shutdown_signal_handlers


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
async def test_sigterm_invokes_callback():
    called = asyncio.Event()
    remove = setup_shutdown_signal_handlers(called.set)
    try:
        os.kill(os.getpid(), signal.SIGTERM)
        await asyncio.wait_for(called.wait(), timeout=1)
    finally:
        remove()

    assert called.is_set()


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
async def test_remove_restores_handlers():
    remove = setup_shutdown_signal_handlers(lambda: None)
    remove()

    assert signal.getsignal(signal.SIGTERM) in (signal.SIG_DFL, signal.SIG_IGN, None)
