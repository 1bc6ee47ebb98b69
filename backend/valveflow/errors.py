"""
errors.py — Pipeline Error Taxonomy
===================================

    SequenceError          — valve events arrived out of order (reported, never fatal)
    InsufficientDataError  — a run has no usable baseline/in-run flow (run skipped)
    BelowThresholdWarning  — no significant flow increase during a run (run skipped)
    SourceUnavailableError — a store query itself failed
"""

from datetime import datetime
from typing import Optional

ON_WHILE_OPEN = "on_while_open"
OFF_WITHOUT_OPEN = "off_without_open"


class ValveFlowError(Exception):
    """Base class for all pipeline errors."""


class SequenceError(ValveFlowError):
    """
    An invalid transition in the valve event stream.

    Collected by the event reconstructor rather than raised, so a single
    misbehaving controller night never aborts the batch.

    Attributes:
        kind: ON_WHILE_OPEN or OFF_WITHOUT_OPEN.
        timestamp: Time of the offending sample.
        valve_id: Value carried by the offending sample.
        open_valve: Valve that was open when the sample arrived (if any).
    """

    def __init__(self, kind: str, timestamp: datetime, valve_id: int,
                 open_valve: Optional[int] = None):
        self.kind = kind
        self.timestamp = timestamp
        self.valve_id = valve_id
        self.open_valve = open_valve
        if kind == ON_WHILE_OPEN:
            msg = (f"out-of-sequence: valve {valve_id} turned on but valve "
                   f"{open_valve} was still on ({timestamp.isoformat()})")
        else:
            msg = (f"out-of-sequence: valve turned off but no valve was on "
                   f"({timestamp.isoformat()})")
        super().__init__(msg)


class InsufficientDataError(ValveFlowError):
    """Baseline or in-run flow window is empty, or ramp-up consumed the run."""


class BelowThresholdWarning(ValveFlowError):
    """Run shows no significant flow increase over baseline."""


class SourceUnavailableError(ValveFlowError):
    """A store query or connection failed."""
