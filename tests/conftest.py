from __future__ import annotations

import datetime as dt
import json
import stat
import subprocess
import sys
import textwrap
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import pytest

from deck_export import config
from deck_export.models import Presentation, Slide

_VERSION_OK = 'echo "Chromium 120.0.6099.109"; exit 0'
_VERSION_BROKEN = 'echo "chromium crashed on startup" >&2; exit 1'
_VERSION_HANG = "exec sleep 30"

_ACTIONS = {
    "ok": 'printf "fake browser output" > "$out"',
    "fail": 'echo "render crashed"; exit 3',
    "no-output": "exit 0",
    "hang": "exec sleep 30",
}


@dataclass
class FakeBrowser:
    path: Path
    args_file: Path

    def args(self) -> list[str]:
        if not self.args_file.exists():
            return []
        return self.args_file.read_text().splitlines()


@pytest.fixture
def fake_browser(tmp_path: Path) -> Callable[..., FakeBrowser]:
    """Return a factory writing a shell script that stands in for chrome."""
    if sys.platform == "win32":
        pytest.skip("fake browser script requires a POSIX shell")

    def factory(
        mode: str = "ok", *, version_ok: bool = True, version_hangs: bool = False
    ) -> FakeBrowser:
        folder = tmp_path / f"fake-chrome-{mode}"
        folder.mkdir(exist_ok=True)
        script = folder / "chrome"
        args_file = folder / "args.txt"
        version = _VERSION_OK if version_ok else _VERSION_BROKEN
        if version_hangs:
            version = _VERSION_HANG
        script.write_text(
            textwrap.dedent(
                f"""\
                #!/bin/sh
                out=""
                for arg in "$@"; do
                  case "$arg" in
                    --version) {version} ;;
                    --print-to-pdf=*) out="${{arg#--print-to-pdf=}}" ;;
                    --screenshot=*) out="${{arg#--screenshot=}}" ;;
                  esac
                done
                printf '%s\\n' "$@" > "{args_file}"
                {_ACTIONS[mode]}
                """
            )
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return FakeBrowser(script, args_file)

    return factory


class FakeHandle:
    """Process double with configurable reactions to signals."""

    def __init__(
        self,
        *,
        exited: bool = False,
        obey_interrupt: bool = True,
        kill_error: OSError | None = None,
        signal_error: Exception | None = None,
    ) -> None:
        self.pid = 4242
        self.returncode: int | None = 0 if exited else None
        self.obey_interrupt = obey_interrupt
        self.kill_error = kill_error
        self.signal_error = signal_error
        self.signals: list[int] = []
        self.killed = False

    def poll(self) -> int | None:
        return self.returncode

    def send_signal(self, sig: int) -> None:
        if self.signal_error is not None:
            raise self.signal_error
        self.signals.append(sig)
        if self.obey_interrupt:
            self.returncode = -sig

    def kill(self) -> None:
        if self.kill_error is not None:
            raise self.kill_error
        self.killed = True
        self.returncode = -9

    def wait(self, timeout: float | None = None) -> int:
        if self.returncode is None:
            raise subprocess.TimeoutExpired("chrome", timeout or 0)
        return self.returncode


@pytest.fixture
def fake_handle() -> type[FakeHandle]:
    return FakeHandle


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "deck_export_config.json"
    path.write_text(json.dumps({"log_level": "DEBUG"}))
    monkeypatch.setattr(config, "CONFIG_PATH", path)
    return path


@pytest.fixture
def presentation() -> Presentation:
    return Presentation(
        title="Quarterly Review",
        author="Tester",
        date=dt.date(2024, 3, 15),
        theme="default",
        slides=[
            Slide(
                html="<h1>Welcome</h1><p>Numbers are <strong>up</strong>.</p>",
                notes="Thank everyone for coming",
                title="Welcome",
                index=0,
            ),
            Slide(
                html=(
                    "<h2>Details</h2><ul><li>Revenue</li><li>Costs</li></ul>"
                    "<pre><code>total = revenue - costs</code></pre>"
                ),
                title="Details",
                index=1,
            ),
        ],
    )


@pytest.fixture
def empty_presentation() -> Presentation:
    return Presentation(title="Empty Deck")
