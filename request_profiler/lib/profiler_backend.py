import logging
from contextlib import ExitStack
from importlib import import_module
from time import perf_counter

from request_profiler.config import PROFILER_PYINSTRUMENT_INTERVAL, PROFILER_UNAVAILABLE_MESSAGE
from request_profiler.lib.measure_mode import measure_clock
from request_profiler.models.measure_mode import MeasureMode
from request_profiler.models.profiler_backend import ProfilerBackend
from request_profiler.models.profiling import ProfileResult


class CProfileSession:
    __slots__ = ('_mode', '_profile', '_stack', '_started_at', '_stats_cls')

    def __init__(self, profile_cls: type, stats_cls: type, mode: MeasureMode) -> None:
        self._mode = mode
        self._stats_cls = stats_cls
        self._stack = ExitStack()
        clock = self._stack.enter_context(measure_clock(mode))
        try:
            self._profile = profile_cls(clock.timer, clock.timeunit)
            self._profile.enable()
        except BaseException:
            self._stack.close()
            raise
        self._started_at = perf_counter()

    def stop(self) -> ProfileResult:
        try:
            self._profile.disable()
        finally:
            self._stack.close()
        duration = perf_counter() - self._started_at
        stats = self._stats_cls(self._profile)
        return ProfileResult(ProfilerBackend.cprofile, self._mode, stats, duration)


class CProfileProfiler:
    """Deterministic profiler from the standard library, supports all measurement modes."""

    __slots__ = ('_profile_cls', '_stats_cls')

    backend = ProfilerBackend.cprofile

    def __init__(self) -> None:
        self._profile_cls = import_module('cProfile').Profile
        self._stats_cls = import_module('pstats').Stats

    def start(self, mode: MeasureMode) -> CProfileSession:
        return CProfileSession(self._profile_cls, self._stats_cls, mode)


class PyinstrumentSession:
    __slots__ = ('_mode', '_profiler')

    def __init__(self, profiler, mode: MeasureMode) -> None:
        self._mode = mode
        self._profiler = profiler
        profiler.start()

    def stop(self) -> ProfileResult:
        session = self._profiler.stop()
        return ProfileResult(ProfilerBackend.pyinstrument, self._mode, session, session.duration)


class PyinstrumentProfiler:
    """Statistical wall-clock profiler, aware of async tasks."""

    __slots__ = ('_profiler_cls',)

    backend = ProfilerBackend.pyinstrument

    def __init__(self) -> None:
        self._profiler_cls = import_module('pyinstrument').Profiler

    def start(self, mode: MeasureMode) -> PyinstrumentSession:
        profiler = self._profiler_cls(interval=PROFILER_PYINSTRUMENT_INTERVAL, async_mode='enabled')
        return PyinstrumentSession(profiler, mode)


type Profiler = CProfileProfiler | PyinstrumentProfiler
type ProfileSession = CProfileSession | PyinstrumentSession

_PACKAGES: dict[ProfilerBackend, str] = {
    ProfilerBackend.cprofile: 'a Python build with the cProfile module',
    ProfilerBackend.pyinstrument: 'pyinstrument (pip install pyinstrument)',
}


def unavailable_message(backend: ProfilerBackend) -> str:
    """
    Get the install hint for a profiler backend that failed to load.

    >>> unavailable_message(ProfilerBackend.pyinstrument)
    'Install pyinstrument (pip install pyinstrument) to use the request profiler'
    """
    return PROFILER_UNAVAILABLE_MESSAGE.format(package=_PACKAGES[backend])


def load_profiler(backend: ProfilerBackend) -> Profiler | None:
    """Load the profiling engine on demand. Returns None when it is not installed."""
    try:
        if backend == ProfilerBackend.cprofile:
            return CProfileProfiler()
        if backend == ProfilerBackend.pyinstrument:
            return PyinstrumentProfiler()
    except ImportError:
        logging.warning('Profiler backend %r is not available', str(backend), exc_info=True)
        return None

    raise NotImplementedError(f'Unsupported profiler backend {backend}')
