from datetime import datetime, timedelta, timezone

import pytest

from backend.valveflow.records import FlowSample, ValveRun, ValveStateSample
from backend.valveflow.stores import InMemoryStore

T0 = datetime(2026, 7, 1, 4, 0, tzinfo=timezone.utc)


def at(minutes: float, base: datetime = T0) -> datetime:
    return base + timedelta(minutes=minutes)


def valve_samples(*events) -> list[ValveStateSample]:
    """events: (minutes after T0, signed valve value) pairs."""
    return [ValveStateSample(at(m), v) for m, v in events]


def flow_samples(*points) -> list[FlowSample]:
    """points: (minutes after T0, flow value) pairs."""
    return [FlowSample(at(m), v) for m, v in points]


def rows(*points, base: datetime = T0) -> list[dict]:
    return [{"timestamp": at(m, base).isoformat(), "value": v} for m, v in points]


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def run_10min() -> ValveRun:
    return ValveRun(5, T0, at(10))


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def watered_store(store) -> InMemoryStore:
    """Valve 5 runs 10 minutes with ~2.0 flow over a dry baseline."""
    store.add_valve_rows(rows((0, 5), (10, -1)))
    store.add_flow_rows(rows((-4, 0.0), (-3, 0.0), (-2, 0.0),
                             (3, 2.0), (5, 2.1), (7, 2.0)))
    return store
