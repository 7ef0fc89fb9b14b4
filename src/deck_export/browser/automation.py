"""Headless Chrome/Chromium process runner used by the PDF and image renderers."""

from __future__ import annotations

import shlex
import shutil
import subprocess
import tempfile
import threading
import time
from collections.abc import Callable, Mapping
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from threading import Event
from typing import Any

from deck_export.browser.locator import find_browser, is_executable_file
from deck_export.browser.process import TrackedProcess
from deck_export.config import coerce_float, coerce_str
from deck_export.errors import BrowserError, CleanupError
from deck_export.paths import PathValidationError, validate_path
from deck_export.utils import logger, raise_if_cancelled

_DEFAULT_TIMEOUT_S = 30.0
_DEFAULT_GRACE_S = 2.0
_POLL_INTERVAL_S = 0.1
_VERSION_TIMEOUT_S = 10.0
_DRAIN_TIMEOUT_S = 2.0

_BASE_ARGS: tuple[str, ...] = (
    "--headless",
    "--disable-gpu",
    "--disable-software-rasterizer",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--virtual-time-budget=5000",
    "--run-all-compositor-stages-before-draw",
)

# leftovers chrome drops into its working directory
TEMP_PATTERNS: tuple[str, ...] = (
    "chrome_*",
    "Crashpad*",
    ".org.chromium.Chromium.*",
    "scoped_dir*",
)

_DIMENSIONS: dict[str, tuple[int, int]] = {
    "low": (1280, 720),
    "medium": (1920, 1080),
    "high": (2560, 1440),
}
_CSS_PAGE_SIZES = {"A4": "A4", "Letter": "letter", "Custom": "A4"}


def image_dimensions(quality: str) -> tuple[int, int]:
    """Return the screenshot ``(width, height)`` for a quality tier."""
    return _DIMENSIONS.get(quality, _DIMENSIONS["medium"])


@dataclass(frozen=True, slots=True)
class BrowserConfig:
    """Settings for a :class:`BrowserAutomation` instance."""

    executable_path: str = ""
    temp_dir: str = ""
    timeout_s: float = _DEFAULT_TIMEOUT_S
    interrupt_grace_s: float = _DEFAULT_GRACE_S

    @classmethod
    def from_mapping(cls, data: Mapping[str, object] | None) -> BrowserConfig:
        """Create a :class:`BrowserConfig` from the ``browser`` config section."""
        if not isinstance(data, Mapping):
            return cls()
        timeout = coerce_float(data.get("timeout_s"), _DEFAULT_TIMEOUT_S)
        return cls(
            executable_path=coerce_str(data.get("executable_path")),
            temp_dir=coerce_str(data.get("temp_dir")),
            timeout_s=timeout or _DEFAULT_TIMEOUT_S,
            interrupt_grace_s=coerce_float(
                data.get("interrupt_grace_s"), _DEFAULT_GRACE_S
            ),
        )


@dataclass(slots=True)
class PdfOptions:
    """Print settings applied to ``--print-to-pdf`` runs.

    Chrome exposes no command line flags for orientation or margins, so they
    are expressed as a CSS ``@page`` rule (see :meth:`page_css`) that callers
    embed into the document before printing.
    """

    page_size: str = ""
    landscape: bool = False
    margin_top: str = ""
    margin_right: str = ""
    margin_bottom: str = ""
    margin_left: str = ""

    def page_css(self) -> str:
        """Return an ``@page`` rule for these options or ``""`` when unset."""
        declarations: list[str] = []
        if self.page_size or self.landscape:
            size = _CSS_PAGE_SIZES.get(self.page_size, "A4")
            orientation = "landscape" if self.landscape else "portrait"
            declarations.append(f"size: {size} {orientation};")
        for side in ("top", "right", "bottom", "left"):
            value = getattr(self, f"margin_{side}")
            if value:
                declarations.append(f"margin-{side}: {value};")
        if not declarations:
            return ""
        return "@page { " + " ".join(declarations) + " }"


@dataclass(slots=True)
class ImageOptions:
    """Screenshot settings; explicit ``width``/``height`` beat the tier."""

    width: int = 0
    height: int = 0
    quality: str = ""
    format: str = "png"

    def dimensions(self) -> tuple[int, int]:
        if self.width > 0 and self.height > 0:
            return self.width, self.height
        return image_dimensions(self.quality)


@dataclass(slots=True)
class BrowserValidation:
    """Outcome of :func:`validate_browser_setup`."""

    available: bool = False
    executable_path: str = ""
    version: str = ""
    error: str = ""


def _checked_path(path: str | Path, what: str) -> Path:
    try:
        return validate_path(path)
    except PathValidationError as exc:
        msg = f"invalid {what} path: {exc}"
        raise PathValidationError(msg) from exc


def _file_url(path: Path) -> str:
    return path.absolute().as_uri()


def _decode(output: bytes | None) -> str:
    return (output or b"").decode("utf-8", errors="replace").strip()


class BrowserAutomation:
    """Drive a headless Chrome/Chromium executable via its command line.

    Every invocation is bounded by ``timeout_s`` and by the optional
    ``cancel`` event, and is tracked in an instance-owned process map so
    :meth:`cleanup` and :meth:`kill_active_processes` can reap stragglers.
    The map is guarded by a single lock owned by this instance.
    """

    def __init__(
        self,
        config: BrowserConfig | None = None,
        *,
        locate: Callable[[], str] = find_browser,
    ) -> None:
        """Resolve the executable and prepare an empty process map.

        Raises:
            BrowserNotFoundError: If no executable is configured and none can
                be located.
        """
        cfg = config or BrowserConfig()
        self._executable_path = cfg.executable_path or locate()
        self._temp_dir = cfg.temp_dir or tempfile.gettempdir()
        self._timeout_s = cfg.timeout_s if cfg.timeout_s > 0 else _DEFAULT_TIMEOUT_S
        self._grace_s = cfg.interrupt_grace_s
        self._processes: dict[str, TrackedProcess] = {}
        self._lock = threading.Lock()

    @property
    def executable_path(self) -> str:
        return self._executable_path

    @property
    def temp_dir(self) -> str:
        return self._temp_dir

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    def convert_html_to_pdf(
        self,
        html_path: str | Path,
        output_path: str | Path,
        options: PdfOptions | None = None,
        *,
        cancel: Event | None = None,
    ) -> None:
        """Print ``html_path`` to ``output_path`` as PDF.

        Raises:
            PathValidationError: If either path contains a traversal sequence.
            BrowserError: If chrome fails, times out, is cancelled or exits
                without writing ``output_path``.
        """
        source = _checked_path(html_path, "HTML")
        target = _checked_path(output_path, "output")
        target.parent.mkdir(parents=True, exist_ok=True)

        args = [*_BASE_ARGS, f"--print-to-pdf={target}"]
        if options is not None and options.page_size:
            args.append("--print-to-pdf-no-header")
        args.append(_file_url(source))
        self._invoke("pdf", "PDF", args, target, cancel)

    def convert_html_to_image(
        self,
        html_path: str | Path,
        output_path: str | Path,
        options: ImageOptions | None = None,
        *,
        cancel: Event | None = None,
    ) -> None:
        """Screenshot ``html_path`` into ``output_path``.

        Raises:
            PathValidationError: If either path contains a traversal sequence.
            BrowserError: If chrome fails, times out, is cancelled or exits
                without writing ``output_path``.
        """
        source = _checked_path(html_path, "HTML")
        target = _checked_path(output_path, "output")
        target.parent.mkdir(parents=True, exist_ok=True)

        opts = options or ImageOptions()
        width, height = opts.dimensions()
        args = [
            *_BASE_ARGS,
            f"--screenshot={target}",
            f"--window-size={width},{height}",
        ]
        if opts.quality == "high":
            args.append("--force-device-scale-factor=2")
        args.append(_file_url(source))
        self._invoke("image", "screenshot", args, target, cancel)

    def get_chrome_version(self, cancel: Event | None = None) -> str:
        """Return the trimmed ``--version`` output of the executable.

        The probe is tracked like a conversion, so ``cancel`` and
        :meth:`cleanup` stop it while it runs.
        """
        raise_if_cancelled(cancel)
        tracked = self._register("version")
        try:
            output = self._run(
                tracked,
                "getting chrome version",
                ["--version"],
                cancel,
                min(self._timeout_s, _VERSION_TIMEOUT_S),
            )
        finally:
            self._release(tracked)
        return _decode(output)

    def ensure_available(self, cancel: Event | None = None) -> None:
        """Raise :class:`BrowserError` unless the executable exists and runs."""
        if not is_executable_file(self._executable_path):
            msg = f"chrome executable not found at {self._executable_path}"
            raise BrowserError(msg)
        try:
            self.get_chrome_version(cancel)
        except BrowserError as exc:
            msg = f"chrome is not functional: {exc}"
            raise BrowserError(msg) from exc

    def is_available(self, cancel: Event | None = None) -> bool:
        """Return ``True`` when :meth:`ensure_available` passes."""
        try:
            self.ensure_available(cancel)
        except BrowserError as exc:
            logger.info("chrome probe unavailable: %s", exc)
            return False
        return True

    def cleanup(self) -> None:
        """Stop every tracked process and remove chrome temp leftovers.

        Each process is interrupted and killed when it ignores the interrupt.
        The sweep always runs to completion and the process map is always
        emptied.

        Raises:
            CleanupError: Listing every process or file that could not be
                stopped or removed.
        """
        errors: list[BaseException] = []
        for tracked in self._drain():
            try:
                tracked.interrupt(self._grace_s)
            except OSError as exc:
                logger.warning("failed to stop chrome process %s: %s", tracked.process_id, exc)
                errors.append(exc)
        errors.extend(self._cleanup_temp_files())
        if errors:
            raise CleanupError("cleanup errors", errors)

    def kill_active_processes(self) -> None:
        """Force-kill every tracked process without a graceful step.

        Raises:
            CleanupError: Listing every process that could not be killed.
        """
        errors: list[BaseException] = []
        for tracked in self._drain():
            try:
                tracked.kill()
            except OSError as exc:
                logger.warning("failed to kill chrome process %s: %s", tracked.process_id, exc)
                errors.append(exc)
        if errors:
            raise CleanupError("kill process errors", errors)

    def get_active_process_count(self) -> int:
        with self._lock:
            return len(self._processes)

    def get_resource_usage(self) -> dict[str, Any]:
        """Return process counts by kind plus the runner configuration."""
        with self._lock:
            kinds = [tracked.kind for tracked in self._processes.values()]
        return {
            "active_processes": len(kinds),
            "pdf_processes": kinds.count("pdf"),
            "image_processes": kinds.count("image"),
            "temp_directory": self._temp_dir,
            "executable_path": self._executable_path,
            "timeout": f"{self._timeout_s:g}s",
        }

    def _register(self, kind: str) -> TrackedProcess:
        """Track a new process of ``kind`` under a fresh id."""
        with self._lock:
            process_id = f"{kind}-{time.time_ns()}"
            while process_id in self._processes:
                process_id = f"{kind}-{time.time_ns()}"
            tracked = TrackedProcess(process_id)
            self._processes[process_id] = tracked
        return tracked

    def _release(self, tracked: TrackedProcess) -> None:
        with self._lock:
            self._processes.pop(tracked.process_id, None)

    def _drain(self) -> list[TrackedProcess]:
        with self._lock:
            tracked = list(self._processes.values())
            self._processes.clear()
        return tracked

    def _invoke(
        self,
        kind: str,
        label: str,
        args: list[str],
        target: Path,
        cancel: Event | None,
    ) -> None:
        raise_if_cancelled(cancel)
        tracked = self._register(kind)
        try:
            self._run(tracked, f"chrome {label} generation failed", args, cancel, self._timeout_s)
        finally:
            self._release(tracked)
        if not target.exists():
            msg = f"chrome {label} output was not created at {target}"
            raise BrowserError(msg)

    def _run(
        self,
        tracked: TrackedProcess,
        failed: str,
        args: list[str],
        cancel: Event | None,
        timeout_s: float,
    ) -> bytes | None:
        """Run chrome with ``args`` until it exits; return its combined output.

        Errors are raised as :class:`BrowserError` prefixed with ``failed``.
        """
        cmd = [self._executable_path, *args]
        logger.debug("running %s", shlex.join(cmd))
        deadline = time.monotonic() + timeout_s
        try:
            proc = subprocess.Popen(  # noqa: S603
                cmd,
                cwd=self._temp_dir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as exc:
            msg = f"{failed}: {exc}"
            raise BrowserError(msg) from exc

        if not tracked.attach(proc):
            output = self._abort(tracked, proc)
            msg = f"{failed}: process stopped during cleanup (output: {output})"
            raise BrowserError(msg)

        while True:
            if cancel is not None and cancel.is_set():
                output = self._abort(tracked, proc)
                msg = f"{failed}: cancelled (output: {output})"
                raise BrowserError(msg)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                output = self._abort(tracked, proc)
                msg = f"{failed}: timeout after {timeout_s:g}s (output: {output})"
                raise BrowserError(msg)
            try:
                stdout, _ = proc.communicate(timeout=min(_POLL_INTERVAL_S, remaining))
            except subprocess.TimeoutExpired:
                continue
            break

        if not tracked.finished:
            tracked.state = "exited"
        if proc.returncode != 0:
            msg = f"{failed}: exit status {proc.returncode} (output: {_decode(stdout)})"
            raise BrowserError(msg)
        return stdout

    @staticmethod
    def _abort(tracked: TrackedProcess, proc: subprocess.Popen[bytes]) -> str:
        """Kill ``proc`` and return whatever output it produced."""
        try:
            if tracked.finished:
                proc.kill()
            else:
                tracked.kill()
        except OSError as exc:
            logger.warning("failed to kill chrome process %s: %s", tracked.process_id, exc)
        with suppress(subprocess.TimeoutExpired, ValueError):
            stdout, _ = proc.communicate(timeout=_DRAIN_TIMEOUT_S)
            return _decode(stdout)
        return ""

    def _cleanup_temp_files(self) -> list[BaseException]:
        errors: list[BaseException] = []
        root = Path(self._temp_dir)
        for pattern in TEMP_PATTERNS:
            for match in root.glob(pattern):
                try:
                    if match.is_dir() and not match.is_symlink():
                        shutil.rmtree(match)
                    else:
                        match.unlink()
                except OSError as exc:
                    errors.append(exc)
        return errors


def validate_browser_setup(
    config: BrowserConfig | None = None,
    *,
    cancel: Event | None = None,
    locate: Callable[[], str] = find_browser,
) -> BrowserValidation:
    """Probe whether browser-based export can work with ``config``."""
    result = BrowserValidation()
    try:
        browser = BrowserAutomation(config, locate=locate)
    except BrowserError as exc:
        result.error = f"could not find Chrome/Chromium executable: {exc}"
        return result

    result.executable_path = browser.executable_path
    try:
        browser.ensure_available(cancel)
    except BrowserError as exc:
        result.error = str(exc)
        return result

    try:
        result.version = browser.get_chrome_version(cancel)
    except BrowserError as exc:
        result.error = f"could not get Chrome version: {exc}"
        return result

    result.available = True
    return result


__all__ = [
    "TEMP_PATTERNS",
    "BrowserAutomation",
    "BrowserConfig",
    "BrowserValidation",
    "ImageOptions",
    "PdfOptions",
    "image_dimensions",
    "validate_browser_setup",
]
