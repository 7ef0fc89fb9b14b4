"""Lifecycle tracking for headless browser child processes.

A :class:`TrackedProcess` is registered with its runner before the child is
spawned and moves through an explicit two-phase stop::

    running -> interrupt_requested -> exited | killed

``interrupt`` sends ``SIGINT`` and waits a grace period before escalating to
``kill``; ``kill`` skips the graceful step. The handle only needs the small
subset of :class:`subprocess.Popen` described by :class:`ProcessHandle`, so
tests can inject doubles that ignore interrupts or refuse to die.
"""

from __future__ import annotations

import datetime as dt
import signal
import subprocess
from dataclasses import dataclass, field
from typing import Literal, Protocol, get_args

from deck_export.utils import logger

# how long to wait for the OS to reap a process after SIGKILL
_REAP_TIMEOUT_S = 5.0


class ProcessHandle(Protocol):
    """Subset of :class:`subprocess.Popen` used for process control."""

    pid: int

    def poll(self) -> int | None: ...

    def send_signal(self, sig: int) -> None: ...

    def kill(self) -> None: ...

    def wait(self, timeout: float | None = None) -> int: ...


ProcessState = Literal["running", "interrupt_requested", "exited", "killed"]

PROCESS_STATES: tuple[str, ...] = get_args(ProcessState)
_TERMINAL: frozenset[str] = frozenset({"exited", "killed"})


@dataclass(slots=True)
class TrackedProcess:
    """A browser invocation tracked by :class:`BrowserAutomation`."""

    process_id: str
    handle: ProcessHandle | None = None
    state: ProcessState = "running"
    started_at: dt.datetime = field(default_factory=dt.datetime.now)

    @property
    def kind(self) -> str:
        """Return the invocation kind encoded in the id (``pdf``/``image``)."""
        return self.process_id.split("-", 1)[0]

    @property
    def finished(self) -> bool:
        return self.state in _TERMINAL

    def attach(self, handle: ProcessHandle) -> bool:
        """Bind the spawned ``handle``.

        Returns ``False`` when the process was stopped before the child was
        spawned; the caller must then kill the freshly started child.
        """
        self.handle = handle
        return not self.finished

    def _live_handle(self) -> ProcessHandle | None:
        """Return the handle while the child still runs, else mark it exited."""
        handle = self.handle
        if handle is None or handle.poll() is not None:
            self.state = "exited"
            return None
        return handle

    def interrupt(self, grace_s: float) -> ProcessState:
        """Request a graceful stop, escalating to :meth:`kill` when ignored.

        Raises:
            OSError: If the escalation to a forced kill fails.
        """
        if self.finished:
            return self.state
        handle = self._live_handle()
        if handle is None:
            return self.state
        try:
            handle.send_signal(signal.SIGINT)
        except ProcessLookupError:
            self.state = "exited"
            return self.state
        except (OSError, ValueError) as exc:
            # Windows Popen rejects SIGINT with ValueError
            logger.debug("interrupt of %s failed: %s", self.process_id, exc)
            return self.kill()
        self.state = "interrupt_requested"
        try:
            handle.wait(timeout=grace_s)
        except subprocess.TimeoutExpired:
            logger.debug(
                "process %s ignored interrupt for %.1fs, killing", self.process_id, grace_s
            )
            return self.kill()
        self.state = "exited"
        return self.state

    def kill(self) -> ProcessState:
        """Force-kill the process and reap it.

        Raises:
            OSError: If the kill signal cannot be delivered.
        """
        if self.finished:
            return self.state
        handle = self.handle if self.state == "interrupt_requested" else self._live_handle()
        if handle is None:
            return self.state
        try:
            handle.kill()
        except ProcessLookupError:
            self.state = "exited"
            return self.state
        try:
            handle.wait(timeout=_REAP_TIMEOUT_S)
        except subprocess.TimeoutExpired:
            logger.warning("process %s did not exit after kill", self.process_id)
        self.state = "killed"
        return self.state


__all__ = ["PROCESS_STATES", "ProcessHandle", "ProcessState", "TrackedProcess"]
