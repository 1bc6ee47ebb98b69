"""
events.py — Valve Run Reconstruction State Machine
===================================================

Turns the controller's raw on/off event stream into discrete valve runs.

States:
    IDLE      — no valve open.
    RUN_OPEN  — one valve open since on_time.

Transitions:
    IDLE     + on(v)  -> RUN_OPEN(v)
    IDLE     + off    -> IDLE, SequenceError(off_without_open)
    RUN_OPEN + off    -> IDLE, emit ValveRun
    RUN_OPEN + on(v)  -> RUN_OPEN(v), SequenceError(on_while_open); last write wins

The controller only ever opens one station at a time, so the id carried
by an "off" sample is not trusted: it always closes the open run.  A run
still open at the end of the lookback window is incomplete and dropped.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from . import config
from .errors import OFF_WITHOUT_OPEN, ON_WHILE_OPEN, SequenceError
from .records import ValveRun, ValveStateSample

logger = logging.getLogger("valveflow.events")

# State constants
IDLE = "IDLE"
RUN_OPEN = "RUN_OPEN"


@dataclass
class ReconstructionResult:
    runs: list[ValveRun] = field(default_factory=list)
    sequence_errors: list[SequenceError] = field(default_factory=list)
    program_warnings: list[str] = field(default_factory=list)
    short_runs: int = 0


class RunReconstructor:
    """
    Two-state machine tracking the single open valve run.

    Attributes:
        min_run_minutes (float): Runs shorter than this are discarded.
        num_valves (int): Highest valid station number.
    """

    def __init__(self, min_run_minutes: float = None, num_valves: int = None):
        self.min_run_minutes = (min_run_minutes if min_run_minutes is not None
                                else config.MIN_RUN_MINUTES)
        self.num_valves = num_valves if num_valves is not None else config.NUM_VALVES
        self._state = IDLE
        self._valve: Optional[int] = None
        self._on_time: Optional[datetime] = None
        self._result = ReconstructionResult()

    @property
    def state(self) -> str:
        return self._state

    def feed(self, sample: ValveStateSample) -> Optional[ValveRun]:
        """
        Apply one controller sample.

        Returns:
            The completed ValveRun if this sample closed a run long enough
            to keep, otherwise None.
        """
        if sample.is_on:
            self._open(sample)
            return None
        return self._close(sample)

    def _open(self, sample: ValveStateSample) -> None:
        if sample.valve_id > self.num_valves:
            logger.warning(f"valve {sample.valve_id} is outside 1..{self.num_valves}")
        if self._state == RUN_OPEN:
            err = SequenceError(ON_WHILE_OPEN, sample.timestamp,
                                sample.valve_id, open_valve=self._valve)
            logger.error(str(err))
            self._result.sequence_errors.append(err)
        self._state = RUN_OPEN
        self._valve = sample.valve_id
        self._on_time = sample.timestamp

    def _close(self, sample: ValveStateSample) -> Optional[ValveRun]:
        if self._state == IDLE:
            err = SequenceError(OFF_WITHOUT_OPEN, sample.timestamp, sample.valve_id)
            logger.error(str(err))
            self._result.sequence_errors.append(err)
            return None

        valve, on_time = self._valve, self._on_time
        self._state = IDLE
        self._valve = None
        self._on_time = None

        if sample.timestamp <= on_time:
            logger.warning(f"valve {valve}: off at {sample.timestamp.isoformat()} "
                           f"is not after on at {on_time.isoformat()}, ignored")
            return None

        run = ValveRun(valve, on_time, sample.timestamp)
        logger.debug(f"valve {valve}: on = {on_time.isoformat()}, "
                     f"off = {run.off_time.isoformat()}")

        if run.duration_minutes < self.min_run_minutes:
            logger.info(f"valve {valve}: run of {run.duration_minutes:.1f} min "
                        f"shorter than {self.min_run_minutes} min, discarded")
            self._result.short_runs += 1
            return None

        warning = check_program_window(run)
        if warning:
            logger.warning(warning)
            self._result.program_warnings.append(warning)

        self._result.runs.append(run)
        return run

    def finish(self) -> ReconstructionResult:
        """Close out the stream; a still-open run is incomplete and dropped."""
        if self._state == RUN_OPEN:
            logger.debug(f"valve {self._valve}: still open at end of window, dropped")
        self._state = IDLE
        self._valve = None
        self._on_time = None
        result, self._result = self._result, ReconstructionResult()
        return result


def check_program_window(run: ValveRun,
                         start_hour: int = None, end_hour: int = None,
                         min_minutes: float = None,
                         max_minutes: float = None,
                         tz: str = None) -> Optional[str]:
    """
    Compare a run against the expected watering program.

    The start hour is read in the program's local zone (tz, default
    config.PROGRAM_TIMEZONE).

    Returns:
        A warning message if the start hour or duration is unusual, else None.
        Never rejects the run.
    """
    start_hour = start_hour if start_hour is not None else config.PROGRAM_START_HOUR
    end_hour = end_hour if end_hour is not None else config.PROGRAM_END_HOUR
    min_minutes = min_minutes if min_minutes is not None else config.PROGRAM_MIN_MINUTES
    max_minutes = max_minutes if max_minutes is not None else config.PROGRAM_MAX_MINUTES
    local_on = run.on_time.astimezone(ZoneInfo(tz or config.PROGRAM_TIMEZONE))

    problems = []
    if not start_hour <= local_on.hour < end_hour:
        problems.append(f"started at {local_on.strftime('%H:%M')} {local_on.tzname()} "
                        f"outside {start_hour:02d}:00-{end_hour:02d}:00")
    if not min_minutes <= run.duration_minutes <= max_minutes:
        problems.append(f"ran {run.duration_minutes:.1f} min "
                        f"outside {min_minutes}-{max_minutes} min")
    if not problems:
        return None
    return f"valve {run.valve_id}: " + ", ".join(problems)


def reconstruct_runs(samples: Iterable[ValveStateSample],
                     min_run_minutes: float = None,
                     num_valves: int = None) -> ReconstructionResult:
    """
    Reconstruct valve runs from a time-ordered controller event stream.

    Args:
        samples: ValveStateSample sequence in timestamp order.
        min_run_minutes: Minimum run length kept. Defaults to config.
        num_valves: Highest valid station number. Defaults to config.

    Returns:
        ReconstructionResult with the runs, collected SequenceErrors,
        program-window warnings and the number of discarded short runs.
    """
    machine = RunReconstructor(min_run_minutes=min_run_minutes, num_valves=num_valves)
    for sample in samples:
        machine.feed(sample)
    result = machine.finish()
    logger.info(f"Reconstructed {len(result.runs)} runs "
                f"({len(result.sequence_errors)} out-of-sequence, "
                f"{result.short_runs} too short)")
    return result
