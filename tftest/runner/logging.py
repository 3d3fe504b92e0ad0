# Where: tftest/runner/logging.py
# What: Console output, per-example log sinks and subprocess streaming helpers.
# Why: Keep full engine logs on disk while concurrent examples share one terminal.
from __future__ import annotations

import hashlib
import re
import subprocess
import threading
import urllib.parse
from pathlib import Path
from typing import Callable, Mapping, Sequence, TextIO

_OUTPUT_LOCK = threading.Lock()
_MASK = "***"
_SENSITIVE_KEY_RE = re.compile(
    r"(secret|password|passwd|token|access_key|private_key|credentials)", re.IGNORECASE
)
_UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_print(message: str = "", *, prefix: str | None = None) -> None:
    line = f"{prefix} {message}" if prefix else message
    with _OUTPUT_LOCK:
        print(line, flush=True)


class LogSink:
    """Line-oriented log file shared by every thread of one example."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._file: TextIO | None = None
        self._lock = threading.Lock()

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            self._file = self.path.open("w", encoding="utf-8")

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
            self._file = None

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def write_line(self, line: str) -> None:
        with self._lock:
            if self._file is None:
                raise RuntimeError(f"log sink {self.path} is not open")
            self._file.write(line + "\n")
            self._file.flush()

    def __enter__(self) -> LogSink:
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def log_path_for(log_dir: Path, name: str) -> Path:
    safe = _UNSAFE_FILENAME_RE.sub("_", name).strip("_") or "subtest"
    if safe != name:
        # distinct names must not collapse onto one file
        digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:8]
        safe = f"{safe}-{digest}"
    return log_dir / f"{safe}.log"


def read_tail(path: Path, *, lines: int = 40) -> list[str]:
    with path.open("r", encoding="utf-8") as f:
        content = f.read().splitlines()
    return content[-lines:]


def make_prefix_printer(label: str) -> Callable[[str], None]:
    prefix = f"[{label}]"
    return lambda line: safe_print(line, prefix=prefix)


def run_and_stream(
    cmd: Sequence[str],
    *,
    cwd: Path,
    env: Mapping[str, str],
    log: Callable[[str], None],
    on_line: Callable[[str], None] | None = None,
) -> int:
    """Run ``cmd`` and forward every output line to ``log`` as it arrives.

    The echoed command line has credentials masked (see :func:`redact_command`).
    Returns the process exit code.
    """
    log("$ " + " ".join(redact_command(cmd)))
    proc = subprocess.Popen(
        list(cmd),
        cwd=str(cwd),
        env=dict(env),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        bufsize=1,
        errors="replace",
    )
    assert proc.stdout is not None
    with proc.stdout:
        for raw_line in proc.stdout:
            line = raw_line.rstrip("\n")
            log(line)
            if on_line:
                on_line(line)
    return proc.wait()


def redact_command(cmd: Sequence[str]) -> list[str]:
    """Mask secrets in ``KEY=value`` arguments, including ``-var=`` and ``-backend-config=``.

    Values of keys that look sensitive are replaced entirely; URL values keep
    everything but their user info.
    """
    return [_redact_token(token) for token in cmd]


def _redact_token(token: str) -> str:
    prefix, body = "", token
    if token.startswith("-"):
        if "=" not in token:
            return token
        flag, body = token.split("=", 1)
        prefix = f"{flag}="
    if "=" not in body:
        return token
    key, value = body.split("=", 1)
    name = key.strip("\"'").split(".")[-1]
    if _SENSITIVE_KEY_RE.search(name):
        return f"{prefix}{key}={_MASK}"
    return f"{prefix}{key}={_redact_url(value)}"


def _redact_url(raw: str) -> str:
    try:
        parts = urllib.parse.urlsplit(raw.strip())
    except ValueError:
        return raw
    if not parts.scheme or "@" not in parts.netloc:
        return raw
    host = parts.netloc.rsplit("@", 1)[1]
    userinfo = _MASK if parts.password is None else f"{_MASK}:{_MASK}"
    return urllib.parse.urlunsplit(parts._replace(netloc=f"{userinfo}@{host}"))
