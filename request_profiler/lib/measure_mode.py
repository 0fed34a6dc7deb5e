import gc
import sys
import time
import tracemalloc
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import NamedTuple

import cython

from request_profiler.models.measure_mode import MeasureMode
from request_profiler.models.profiler_backend import ProfilerBackend

_DEFAULT_MODE: dict[ProfilerBackend, MeasureMode] = {
    ProfilerBackend.cprofile: MeasureMode.process_time,
    ProfilerBackend.pyinstrument: MeasureMode.wall_time,
}

# pyinstrument is a wall-clock sampler
_SUPPORTED_MODES: dict[ProfilerBackend, frozenset[MeasureMode]] = {
    ProfilerBackend.cprofile: frozenset(MeasureMode),
    ProfilerBackend.pyinstrument: frozenset((MeasureMode.wall_time,)),
}

_UNITS: dict[MeasureMode, str] = {
    MeasureMode.allocations: 'blocks',
    MeasureMode.memory: 'bytes',
    MeasureMode.gc_runs: 'collections',
}


class ModeResolutionError(ValueError):
    pass


class MeasureClock(NamedTuple):
    timer: Callable[[], float | int]
    timeunit: float
    """Units per timer tick, or 0 when the timer returns float seconds."""


def measure_unit(mode: MeasureMode) -> str:
    """Get the unit the reports of the given mode are measured in."""
    return _UNITS.get(mode, 'seconds')


def resolve_measure_mode(name: str | None, backend: ProfilerBackend) -> MeasureMode | ModeResolutionError:
    """
    Resolve the requested measurement mode name for the given backend.

    Unknown or unsupported names are returned as an error value.

    >>> resolve_measure_mode('Wall_Time', ProfilerBackend.cprofile)
    <MeasureMode.wall_time: 'wall_time'>
    >>> resolve_measure_mode(None, ProfilerBackend.cprofile)
    <MeasureMode.process_time: 'process_time'>
    """
    if name is None:
        return _DEFAULT_MODE[backend]

    try:
        mode = MeasureMode(name.strip().lower())
    except ValueError:
        valid = ', '.join(MeasureMode)
        return ModeResolutionError(f'Unknown measurement mode {name!r}, expected one of: {valid}')

    if mode not in _SUPPORTED_MODES[backend]:
        return ModeResolutionError(f"Measurement mode '{mode}' is not supported by the {backend} profiler")

    return mode


@contextmanager
def measure_clock(mode: MeasureMode) -> Iterator[MeasureClock]:
    """
    Provide the cProfile timer for the given measurement mode.

    Modes backed by interpreter hooks install them for the duration of the context.
    """
    if mode == MeasureMode.process_time:
        yield MeasureClock(time.process_time, 0)
    elif mode == MeasureMode.wall_time:
        yield MeasureClock(time.perf_counter, 0)
    elif mode == MeasureMode.cpu_time:
        yield MeasureClock(time.thread_time, 0)
    elif mode == MeasureMode.allocations:
        yield MeasureClock(sys.getallocatedblocks, 1)
    elif mode == MeasureMode.memory:
        with _tracemalloc_context():
            yield MeasureClock(_traced_memory, 1)
    elif mode == MeasureMode.gc_runs:
        yield MeasureClock(_gc_collections, 1)
    elif mode == MeasureMode.gc_time:
        timer = _GCTimer()
        gc.callbacks.append(timer)
        try:
            yield MeasureClock(timer.elapsed, 0)
        finally:
            gc.callbacks.remove(timer)
    else:
        raise NotImplementedError(f'Unsupported measurement mode {mode}')


@contextmanager
def _tracemalloc_context():
    owner: cython.bint = not tracemalloc.is_tracing()
    if owner:
        tracemalloc.start()
    try:
        yield
    finally:
        if owner:
            tracemalloc.stop()


def _traced_memory() -> int:
    return tracemalloc.get_traced_memory()[0]


def _gc_collections() -> int:
    return sum(stats['collections'] for stats in gc.get_stats())


class _GCTimer:
    """Accumulate the time spent in garbage collection."""

    __slots__ = ('_started_at', '_total')

    def __init__(self) -> None:
        self._started_at = 0.0
        self._total = 0.0

    def __call__(self, phase: str, info: dict) -> None:
        if phase == 'start':
            self._started_at = time.perf_counter()
        elif phase == 'stop':
            self._total += time.perf_counter() - self._started_at

    def elapsed(self) -> float:
        return self._total
