from collections.abc import Mapping
from typing import NamedTuple

from request_profiler.config import PROFILER_MEASURE_PARAM, PROFILER_PARAM, PROFILER_REPORT_PARAM
from request_profiler.models.report_variant import ReportVariant

_FALSY_FLAGS = frozenset(('0', 'false', 'no', 'off'))

_VARIANTS: dict[str, ReportVariant] = {
    'flat': ReportVariant.flat,
    'graph': ReportVariant.graph,
}


class ProfileRequest(NamedTuple):
    enabled: bool
    variant: ReportVariant = ReportVariant.graph_html
    measure: str | None = None

    @classmethod
    def from_query_params(cls, params: Mapping[str, str]) -> 'ProfileRequest':
        """
        Read the profiling options from the request query parameters.

        >>> ProfileRequest.from_query_params({'profile': '1', 'profile_report': 'flat'})
        ProfileRequest(enabled=True, variant=<ReportVariant.flat: 'flat'>, measure=None)
        """
        flag = params.get(PROFILER_PARAM)
        enabled = flag is not None and flag.strip().lower() not in _FALSY_FLAGS
        variant = _VARIANTS.get(params.get(PROFILER_REPORT_PARAM, ''), ReportVariant.graph_html)
        measure = params.get(PROFILER_MEASURE_PARAM) or None
        return cls(enabled, variant, measure)
