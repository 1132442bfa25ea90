"""
Run orchestrator - drives one cucumber-js process.

Lifecycle of a run:

    IDLE -> SPAWNING -> STREAMING -> CLOSED

- SPAWNING: the subprocess is being created; an OSError here is a
  SpawnFailure (an `error` event is fired, then the exception propagates)
- STREAMING: stdout is read line by line; every line is decoded and either
  forwarded as an event or, if it is not a protocol event, appended to the
  report output. stderr lines are logged as warnings and forwarded as
  `stderr` events.
- CLOSED: the process exited (a `close` event carries the exit code) or the
  caller cancelled the run

A nonzero exit code only means that scenarios failed; it is returned in the
outcome, never raised. There is no timeout: cancellation through a
CancellationToken is the only way to abort.

Example:
    runner = CucumberRunner("/path/to/project")
    outcome = await runner.run(["features/login.feature:12"], on_event=handler.handle)
    print(outcome.exit_code)
"""

import asyncio
import contextlib
import logging
import shlex
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .cancellation import CancellationToken
from .config import DEFAULT_COMMAND, clean_and_copy_config
from .errors import SpawnFailure
from .events import CLOSE, ERROR, STDERR, CucumberEvent, parse_line
from .ports import TestRunReport

logger = logging.getLogger(__name__)

# Appended to every invocation: newline-delimited message envelopes on stdout.
FORMAT_ARGS = ["--format", "message"]

# gherkinDocument envelopes of large feature files are single long lines.
STREAM_LIMIT = 64 * 1024 * 1024

EventListener = Callable[[CucumberEvent], None]


class RunState(Enum):
    IDLE = "idle"
    SPAWNING = "spawning"
    STREAMING = "streaming"
    CLOSED = "closed"


@dataclass
class RunOutcome:
    """
    Terminal state of one invocation.

    Attributes:
        state: Last lifecycle state reached
        exit_code: Process exit code (None if the process never exited normally)
        error: Spawn error, if the process could not be started
        cancelled: True if the caller cancelled the run
    """
    state: RunState = RunState.IDLE
    exit_code: Optional[int] = None
    error: Optional[BaseException] = None
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "exit_code": self.exit_code,
            "error": str(self.error) if self.error is not None else None,
            "cancelled": self.cancelled,
        }


class CucumberRunner:
    """
    Spawns cucumber-js and streams its decoded events.

    Listeners registered with subscribe() receive every event of every run;
    the on_event callback passed to run() receives the events of that run.
    """

    def __init__(self, root_path: Union[str, Path], command: Optional[Sequence[str]] = None):
        """
        Initialize the runner.

        Args:
            root_path: Project directory (cwd of the subprocess)
            command: Executable plus leading args (default: npx cucumber-js)
        """
        self.root_path = Path(root_path)
        self.command = list(command) if command else list(DEFAULT_COMMAND)
        self._listeners: List[EventListener] = []

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register a listener for all events; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def build_argv(self, args: Sequence[str] = ()) -> List[str]:
        return [*self.command, *args, *FORMAT_ARGS]

    async def run(
        self,
        args: Sequence[str] = (),
        report: Optional[TestRunReport] = None,
        on_event: Optional[EventListener] = None,
        token: Optional[CancellationToken] = None,
    ) -> RunOutcome:
        """
        Run cucumber-js with `args` and stream its events.

        Args:
            args: Paths / path:line arguments and extra flags
            report: Receives the command line and non-protocol output lines
            on_event: Called for every event of this run
            token: Cancellation token checked once per output line

        Returns:
            RunOutcome of the invocation

        Raises:
            SpawnFailure: If the process could not be started
        """
        argv = self.build_argv(args)
        outcome = RunOutcome()

        def fire(event: CucumberEvent) -> None:
            if on_event is not None:
                on_event(event)
            for listener in list(self._listeners):
                listener(event)

        command_line = shlex.join(argv)
        logger.info("Running %s in %s", command_line, self.root_path)
        if report is not None:
            report.append_output(command_line)

        outcome.state = RunState.SPAWNING
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(self.root_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            outcome.state = RunState.CLOSED
            outcome.error = e
            logger.error("Failed to start %s: %s", command_line, e)
            fire(CucumberEvent(type=ERROR, data=e))
            raise SpawnFailure(argv, e) from e

        outcome.state = RunState.STREAMING
        cancelled = asyncio.Event()
        unregister = token.on_cancelled(cancelled.set) if token is not None else None

        streams = asyncio.gather(
            self._read_stdout(proc.stdout, fire, report, token),
            self._read_stderr(proc.stderr, fire),
        )
        cancel_wait = asyncio.ensure_future(cancelled.wait())
        try:
            done, _ = await asyncio.wait({streams, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)

            if token is not None and token.is_cancellation_requested:
                logger.info("Run cancelled; no further events will be forwarded")
                streams.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await streams
                self._kill(proc)
                await proc.wait()
                outcome.cancelled = True
                outcome.state = RunState.CLOSED
                return outcome

            streams.result()
            exit_code = await proc.wait()
        except BaseException:
            self._kill(proc)
            raise
        finally:
            cancel_wait.cancel()
            if unregister is not None:
                unregister()

        outcome.exit_code = exit_code
        outcome.state = RunState.CLOSED
        logger.info("cucumber-js exited with code %s", exit_code)
        fire(CucumberEvent(type=CLOSE, data=exit_code))
        return outcome

    async def run_with_tmp_config(
        self,
        args: Sequence[str] = (),
        report: Optional[TestRunReport] = None,
        on_event: Optional[EventListener] = None,
        token: Optional[CancellationToken] = None,
    ) -> RunOutcome:
        """
        Run with a stripped copy of the project's cucumber config.

        Used when `args` select specific files/lines, which would otherwise be
        merged with the `paths` of the default profile.
        """
        tmp_config = await asyncio.to_thread(clean_and_copy_config, self.root_path)
        full_args = list(args)
        if tmp_config is not None:
            full_args.extend(["--config", tmp_config.name])
        return await self.run(full_args, report=report, on_event=on_event, token=token)

    async def _read_stdout(
        self,
        stream: asyncio.StreamReader,
        fire: EventListener,
        report: Optional[TestRunReport],
        token: Optional[CancellationToken],
    ) -> None:
        while True:
            raw = await stream.readline()
            if not raw:
                return
            if token is not None and token.is_cancellation_requested:
                return
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line.strip():
                continue

            event = parse_line(line)
            if event is not None:
                fire(event)
            else:
                logger.debug("cucumber-js output: %s", line)
                if report is not None:
                    report.append_output(line)

    async def _read_stderr(self, stream: asyncio.StreamReader, fire: EventListener) -> None:
        while True:
            raw = await stream.readline()
            if not raw:
                return
            text = raw.decode("utf-8", errors="replace")
            logger.warning("cucumber-js stderr: %s", text.rstrip())
            fire(CucumberEvent(type=STDERR, data=text))

    @staticmethod
    def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            pass
