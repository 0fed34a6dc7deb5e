from typing import Any, Literal, NamedTuple

from request_profiler.models.measure_mode import MeasureMode
from request_profiler.models.profiler_backend import ProfilerBackend

ReportMediaType = Literal['text/plain', 'text/html']


class ProfileResult(NamedTuple):
    backend: ProfilerBackend
    mode: MeasureMode
    data: Any  # pstats.Stats or pyinstrument.session.Session
    duration: float


class CapturedResponse(NamedTuple):
    status: int
    headers: list[tuple[bytes, bytes]]
    body: bytes
    started: bool
    complete: bool


class CapturedOutcome(NamedTuple):
    output: CapturedResponse | None
    failure: BaseException | None = None


class RenderedReport(NamedTuple):
    content: str
    media_type: ReportMediaType
