from __future__ import annotations

import os
import queue
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, replace
from textwrap import shorten
from typing import Callable, Mapping, Sequence

from .logging_utils import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class ProgressSettings:
    show: bool = True
    idle_seconds: float = 2.0
    style: str = "braille"  # braille | ascii
    interval: float = 0.12


_progress_defaults = ProgressSettings()


def _merge(
    base: ProgressSettings,
    show: bool | None,
    idle: float | None,
    style: str | None,
    interval: float | None,
) -> ProgressSettings:
    updates: dict[str, object] = {}
    if show is not None:
        updates["show"] = bool(show)
    if idle is not None:
        updates["idle_seconds"] = float(idle)
    if style is not None:
        updates["style"] = str(style)
    if interval is not None:
        updates["interval"] = float(interval)
    return replace(base, **updates) if updates else base


def _parse_env_bool(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _parse_env_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def resolve_progress_settings(
    show: bool | None = None,
    idle: float | None = None,
    style: str | None = None,
    interval: float | None = None,
) -> ProgressSettings:
    """
    우선순위: 호출 인자 > CLI_* 환경변수 > 전역 기본값
    """
    settings = _merge(
        _progress_defaults,
        _parse_env_bool("CLI_SHOW_PROGRESS"),
        _parse_env_float("CLI_PROGRESS_IDLE_SECONDS"),
        os.getenv("CLI_PROGRESS_STYLE"),
        _parse_env_float("CLI_PROGRESS_INTERVAL_SECONDS"),
    )
    return _merge(settings, show, idle, style, interval)


def _is_tty(stream) -> bool:  # noqa: ANN001
    isatty = getattr(stream, "isatty", None)
    if isatty is None:
        return False
    try:
        return bool(isatty())
    except ValueError:
        # 이미 닫힌 스트림
        return False


_BRAILLE_FRAMES = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]
_ASCII_FRAMES = ["|", "/", "-", "\\"]


def _format_elapsed(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:0.1f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m{int(seconds % 60):02d}s"


class _IdleProgressIndicator:
    """
    출력이 idle_seconds 이상 없을 때만 stderr 한 줄에 스피너 + 경과시간을 그린다.
    stdout 로그와 섞이지 않도록 stderr 만 사용한다.
    """

    def __init__(self, message: str, settings: ProgressSettings, stream=None) -> None:  # noqa: ANN001
        self._message = message
        self._stream = stream if stream is not None else sys.stderr
        self._frames = _ASCII_FRAMES if settings.style.strip().lower() == "ascii" else _BRAILLE_FRAMES
        self._interval = max(settings.interval, 0.02)
        self._idle_seconds = max(settings.idle_seconds, 0.0)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._shown = False
        self._last_len = 0

    def start(self, started: float, last_activity: Callable[[], float]) -> None:
        if self._thread is not None:
            return

        def _loop() -> None:
            idx = 0
            while not self._stop.is_set():
                now = time.monotonic()
                idle = now - last_activity()
                if idle < self._idle_seconds:
                    self.clear()
                    time.sleep(min(self._interval, max(self._idle_seconds - idle, 0.02)))
                    continue
                frame = self._frames[idx % len(self._frames)]
                text = f"{frame} {self._message}  {_format_elapsed(now - started)}"
                self._last_len = max(self._last_len, len(text))
                self._stream.write("\r" + text)
                self._stream.flush()
                self._shown = True
                idx += 1
                time.sleep(self._interval)

        self._thread = threading.Thread(target=_loop, daemon=True)
        self._thread.start()

    def clear(self) -> None:
        if not self._shown:
            return
        self._stream.write("\r" + (" " * self._last_len) + "\r")
        self._stream.flush()
        self._shown = False

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
        self.clear()


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _not_found(cmd: Sequence[str]) -> RuntimeError:
    return RuntimeError(
        f"필요한 명령을 찾을 수 없습니다: {cmd[0]} (gcloud/kubectl/docker 가 설치되어 있는지 확인하세요)"
    )


def _timed_out(cmd: Sequence[str], timeout: float | None) -> RuntimeError:
    return RuntimeError(f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}")


def _failed(cmd: Sequence[str], returncode: int, stdout: str, stderr: str) -> RuntimeError:
    stdout = stdout.strip()
    stderr = stderr.strip()
    detail = ""
    if stderr:
        detail = "\nstderr:\n" + shorten(stderr, width=2000)
    elif stdout:
        detail = "\nstdout:\n" + shorten(stdout, width=2000)
    return RuntimeError(f"명령 실행 실패: {' '.join(cmd)} (exit={returncode}){detail}")


def run_command(
    cmd: Sequence[str],
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = 900.0,
    check: bool = True,
    stream_output: bool = False,
    spinner_message: str | None = None,
    show_progress: bool | None = None,
    progress_idle_seconds: float | None = None,
    progress_style: str | None = None,
    progress_interval: float | None = None,
) -> RunResult:
    """
    외부 명령(gcloud/kubectl/docker) 실행 공통 유틸.

    - stream_output=False: stdout/stderr 를 캡처하고 실패 시 일부를 에러에 포함한다.
    - stream_output=True : 출력을 실시간으로 stdout 에 흘린다. (빌드처럼 오래 걸리는 명령)
    - check=False: 종료코드가 0 이 아니어도 예외 없이 RunResult 를 돌려준다.
      (명령을 찾을 수 없거나 timeout 인 경우는 항상 RuntimeError)
    """
    logger.info("명령 실행: %s", " ".join(cmd))

    settings = resolve_progress_settings(
        show_progress, progress_idle_seconds, progress_style, progress_interval
    )
    message = spinner_message or shorten(" ".join(cmd), width=72, placeholder="…")
    indicator: _IdleProgressIndicator | None = None
    if settings.show and _is_tty(sys.stderr):
        indicator = _IdleProgressIndicator(message, settings, stream=sys.stderr)

    if stream_output:
        result = _run_streaming(cmd, cwd=cwd, env=env, timeout=timeout, indicator=indicator)
    else:
        result = _run_captured(cmd, cwd=cwd, env=env, timeout=timeout, indicator=indicator)

    if check and not result.ok:
        raise _failed(cmd, result.returncode, result.stdout, result.stderr)
    return result


def _run_captured(
    cmd: Sequence[str],
    *,
    cwd: str | None,
    env: Mapping[str, str] | None,
    timeout: float | None,
    indicator: _IdleProgressIndicator | None,
) -> RunResult:
    started = time.monotonic()
    if indicator is not None:
        indicator.start(started, lambda: started)

    try:
        proc = subprocess.run(  # noqa: S603
            list(cmd),
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError as e:
        raise _not_found(cmd) from e
    except subprocess.TimeoutExpired as e:
        raise _timed_out(cmd, timeout) from e
    finally:
        if indicator is not None:
            indicator.stop()

    if proc.stdout:
        logger.debug("명령 stdout: %s", shorten(proc.stdout.strip(), width=2000))
    if proc.stderr:
        logger.debug("명령 stderr: %s", shorten(proc.stderr.strip(), width=2000))
    return RunResult(returncode=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or "")


def _run_streaming(
    cmd: Sequence[str],
    *,
    cwd: str | None,
    env: Mapping[str, str] | None,
    timeout: float | None,
    indicator: _IdleProgressIndicator | None,
) -> RunResult:
    # docker/gcloud 는 진행 로그를 stderr 로도 내보내므로 STDOUT 으로 합친다.
    try:
        proc = subprocess.Popen(  # noqa: S603
            list(cmd),
            cwd=cwd,
            env=dict(env) if env is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
        )
    except FileNotFoundError as e:
        raise _not_found(cmd) from e

    started = time.monotonic()
    deadline = None if timeout is None else started + float(timeout)
    activity = {"last": started}
    activity_lock = threading.Lock()

    def _last_activity() -> float:
        with activity_lock:
            return activity["last"]

    if indicator is not None:
        indicator.start(started, _last_activity)

    lines: queue.Queue[str | None] = queue.Queue()

    def _reader() -> None:
        try:
            assert proc.stdout is not None
            for line in proc.stdout:
                lines.put(line)
        finally:
            lines.put(None)

    reader = threading.Thread(target=_reader, daemon=True)
    reader.start()

    out_lines: list[str] = []
    try:
        while True:
            now = time.monotonic()
            if deadline is not None and now >= deadline:
                proc.kill()
                proc.wait()
                raise _timed_out(cmd, timeout)

            wait_for = 0.1 if deadline is None else min(0.1, max(deadline - now, 0.0))
            try:
                item = lines.get(timeout=wait_for)
            except queue.Empty:
                continue

            if item is None:
                break

            if indicator is not None:
                indicator.clear()
            out_lines.append(item)
            sys.stdout.write(item)
            sys.stdout.flush()
            with activity_lock:
                activity["last"] = time.monotonic()

        reader.join(timeout=1.0)
        remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
        returncode = proc.wait(timeout=remaining)
    except subprocess.TimeoutExpired as e:
        proc.kill()
        proc.wait()
        raise _timed_out(cmd, timeout) from e
    finally:
        if proc.stdout is not None:
            proc.stdout.close()
        if indicator is not None:
            indicator.stop()

    return RunResult(returncode=returncode, stdout="".join(out_lines), stderr="")
