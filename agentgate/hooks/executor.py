"""
Out-of-process hook execution.

Each hook runs as a shell command. The JSON envelope is written to its stdin,
stdout/stderr are captured, and the process is bounded by the hook's timeout:
on expiry it gets SIGTERM, then SIGKILL if it is still alive after the grace
period. A session cancellation event sends SIGTERM without marking the result
as timed out.
"""

import asyncio
import os
import signal as _signal
from typing import List, Optional

from .types import HookConfig, HookExecutionResult, HookInput, HookOutput
from ..logger import logger

KILL_GRACE_PERIOD_SECONDS = 5.0
STREAM_DRAIN_TIMEOUT_SECONDS = 1.0
_READ_CHUNK_SIZE = 4096


async def _read_stream(stream: Optional[asyncio.StreamReader], chunks: List[bytes]) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK_SIZE)
        if not chunk:
            break
        chunks.append(chunk)


def _send_signal(process: asyncio.subprocess.Process, sig: int) -> None:
    """Signal the hook's process group (the process itself off POSIX)."""
    if process.returncode is not None:
        return
    try:
        if os.name == "posix":
            os.killpg(process.pid, sig)
        elif sig == getattr(_signal, "SIGKILL", None):
            process.kill()
        else:
            process.terminate()
    except ProcessLookupError:
        pass


class HookExecutor:
    """
    Runs one hook command per call and reports what happened.

    ``execute`` never raises for process problems: spawn failures, non-zero
    exits and timeouts all come back as a HookExecutionResult.

    Example:
        executor = HookExecutor()
        result = await executor.execute(hook, hook_input, signal)
        if result.outcome is HookExecutionOutcome.BlockingError:
            ...
    """

    def __init__(
        self,
        kill_grace_period: float = KILL_GRACE_PERIOD_SECONDS,
        drain_timeout: float = STREAM_DRAIN_TIMEOUT_SECONDS,
    ):
        """
        Args:
            kill_grace_period: Seconds between SIGTERM and SIGKILL on timeout
            drain_timeout: Seconds to keep reading output after the process exits
        """
        self.kill_grace_period = kill_grace_period
        self.drain_timeout = drain_timeout

    async def execute(
        self,
        hook: HookConfig,
        hook_input: HookInput,
        signal: Optional[asyncio.Event] = None,
    ) -> HookExecutionResult:
        """
        Run ``hook`` with ``hook_input`` on stdin.

        Args:
            hook: The command hook to run
            hook_input: Envelope serialized to the process's stdin
            signal: Optional session cancellation event

        Returns:
            HookExecutionResult for the run
        """
        loop = asyncio.get_running_loop()
        payload = hook_input.to_json().encode("utf-8")

        try:
            process = await asyncio.create_subprocess_shell(
                hook.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=os.environ.copy(),
                start_new_session=os.name == "posix",
            )
        except (OSError, ValueError) as e:
            logger.warning(f"[hooks] Failed to spawn hook '{hook.command}': {e}")
            return HookExecutionResult(exit_code=-1, stderr=f"\n{e}", command=hook.command)

        stdout_chunks: List[bytes] = []
        stderr_chunks: List[bytes] = []
        readers = [
            loop.create_task(_read_stream(process.stdout, stdout_chunks)),
            loop.create_task(_read_stream(process.stderr, stderr_chunks)),
        ]
        writer = loop.create_task(self._write_input(process, payload))

        timed_out = False
        kill_handle: Optional[asyncio.TimerHandle] = None

        def force_kill() -> None:
            if process.returncode is None:
                logger.debug(f"[hooks] Hook '{hook.command}' ignored SIGTERM, sending SIGKILL")
                _send_signal(process, getattr(_signal, "SIGKILL", _signal.SIGTERM))

        def on_timeout() -> None:
            nonlocal timed_out, kill_handle
            timed_out = True
            logger.debug(f"[hooks] Hook '{hook.command}' timed out after {hook.timeout_ms}ms")
            _send_signal(process, _signal.SIGTERM)
            kill_handle = loop.call_later(self.kill_grace_period, force_kill)

        timeout_handle = loop.call_later(hook.timeout_ms / 1000, on_timeout)

        cancel_waiter: Optional[asyncio.Task] = None
        if signal is not None:
            if signal.is_set():
                logger.debug(f"[hooks] Session already cancelled, terminating '{hook.command}'")
                _send_signal(process, _signal.SIGTERM)
            else:
                cancel_waiter = loop.create_task(self._terminate_on(signal, process, hook))

        try:
            await process.wait()
        finally:
            timeout_handle.cancel()
            if kill_handle is not None:
                kill_handle.cancel()
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            if process.returncode is None:
                # Caller was cancelled while the hook was still running
                _send_signal(process, getattr(_signal, "SIGKILL", _signal.SIGTERM))

        _, pending = await asyncio.wait(readers + [writer], timeout=self.drain_timeout)
        leftovers = list(pending)
        if cancel_waiter is not None:
            leftovers.append(cancel_waiter)
        for task in leftovers:
            task.cancel()
        # No helper task outlives the hook
        await asyncio.gather(*leftovers, return_exceptions=True)

        returncode = process.returncode
        exit_code = returncode if returncode is not None and returncode >= 0 else -1
        stdout = b"".join(stdout_chunks).decode("utf-8", errors="replace")
        stderr = b"".join(stderr_chunks).decode("utf-8", errors="replace")

        logger.debug(
            f"[hooks] '{hook.command}' exited with {exit_code}"
            f" (timed_out={timed_out}) stdout={stdout!r} stderr={stderr!r}"
        )

        return HookExecutionResult(
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            timed_out=timed_out,
            output=HookOutput.parse(stdout),
            command=hook.command,
        )

    @staticmethod
    async def _write_input(process: asyncio.subprocess.Process, payload: bytes) -> None:
        stdin = process.stdin
        if stdin is None:
            return
        try:
            stdin.write(payload)
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # Hook exited without reading its input
            pass
        finally:
            stdin.close()

    @staticmethod
    async def _terminate_on(
        signal: asyncio.Event,
        process: asyncio.subprocess.Process,
        hook: HookConfig,
    ) -> None:
        await signal.wait()
        logger.debug(f"[hooks] Session cancelled, terminating '{hook.command}'")
        _send_signal(process, _signal.SIGTERM)
