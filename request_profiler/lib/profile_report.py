from html import escape
from io import StringIO
from pathlib import Path
from pstats import SortKey, Stats, func_std_string
from typing import NamedTuple

from jinja2 import Environment, FileSystemLoader

from request_profiler.config import ENV, PROFILER_REPORT_LIMIT
from request_profiler.lib.measure_mode import measure_unit
from request_profiler.models.profiler_backend import ProfilerBackend
from request_profiler.models.profiling import ProfileResult, RenderedReport
from request_profiler.models.report_variant import ReportVariant

_J2 = Environment(
    loader=FileSystemLoader(Path(__file__).parent.parent.joinpath('templates')),
    autoescape=True,
    auto_reload=ENV != 'prod',
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=False,
)


class _GraphLink(NamedTuple):
    anchor: int | None
    name: str
    calls: int
    own: float
    total: float


class _GraphEntry(NamedTuple):
    anchor: int
    name: str
    primitive_calls: int
    calls: int
    own: float
    total: float
    callers: list[_GraphLink]
    callees: list[_GraphLink]


def format_report(result: ProfileResult, variant: ReportVariant) -> RenderedReport:
    """
    Render the profiling result in the requested report variant.

    Flat and graph variants are plain text, the graph_html variant is an HTML page.
    """
    if result.backend == ProfilerBackend.cprofile:
        content = _render_cprofile(result, variant)
    elif result.backend == ProfilerBackend.pyinstrument:
        content = _render_pyinstrument(result, variant)
    else:
        raise NotImplementedError(f'Unsupported profiler backend {result.backend}')

    return RenderedReport(content, 'text/html' if variant == ReportVariant.graph_html else 'text/plain')


def _report_header(result: ProfileResult) -> str:
    return (
        f'Profiled with {result.backend}, '
        f'measure mode: {result.mode} ({measure_unit(result.mode)}), '
        f'duration: {result.duration:.6f}s\n'
    )


def _render_cprofile(result: ProfileResult, variant: ReportVariant) -> str:
    buffer = StringIO()
    stats = Stats(stream=buffer).add(result.data)  # copy, printing sorts in place

    if variant == ReportVariant.flat:
        buffer.write(_report_header(result))
        stats.sort_stats(SortKey.TIME).print_stats(PROFILER_REPORT_LIMIT)
        return buffer.getvalue()

    stats.sort_stats(SortKey.CUMULATIVE, SortKey.TIME)

    if variant == ReportVariant.graph:
        buffer.write(_report_header(result))
        stats.print_callers(PROFILER_REPORT_LIMIT)
        stats.print_callees(PROFILER_REPORT_LIMIT)
        return buffer.getvalue()

    return _J2.get_template('profiler/graph.html.jinja').render({
        'backend': str(result.backend),
        'mode': str(result.mode),
        'unit': measure_unit(result.mode),
        'duration': result.duration,
        'total_calls': stats.total_calls,
        'total_time': stats.total_tt,
        'entries': _graph_entries(stats),
    })


def _graph_entries(stats: Stats) -> list[_GraphEntry]:
    stats.calc_callees()
    funcs = stats.fcn_list[:PROFILER_REPORT_LIMIT]  # pyright: ignore[reportAttributeAccessIssue]
    anchors = {func: i for i, func in enumerate(funcs)}

    def link(func, link_stats) -> _GraphLink:
        nc, _, tt, ct = link_stats[:4]
        return _GraphLink(anchors.get(func), func_std_string(func), nc, tt, ct)

    entries: list[_GraphEntry] = []
    for i, func in enumerate(funcs):
        cc, nc, tt, ct, callers = stats.stats[func]  # pyright: ignore[reportAttributeAccessIssue]
        callees = stats.all_callees.get(func, {})  # pyright: ignore[reportAttributeAccessIssue]
        entries.append(
            _GraphEntry(
                anchor=i,
                name=func_std_string(func),
                primitive_calls=cc,
                calls=nc,
                own=tt,
                total=ct,
                callers=sorted((link(f, s) for f, s in callers.items()), key=lambda v: v.total, reverse=True),
                callees=sorted((link(f, s) for f, s in callees.items()), key=lambda v: v.total, reverse=True),
            )
        )
    return entries


def _render_pyinstrument(result: ProfileResult, variant: ReportVariant) -> str:
    from pyinstrument.renderers import ConsoleRenderer, HTMLRenderer

    if variant == ReportVariant.graph_html:
        page = HTMLRenderer().render(result.data)
        head, body_tag, rest = page.partition('<body>')
        header = f'<p class="profile-header">{escape(_report_header(result).rstrip())}</p>\n'
        if not body_tag:
            return header + page
        return f'{head}{body_tag}\n{header}{rest}'

    renderer = ConsoleRenderer(unicode=True, color=False, flat=variant == ReportVariant.flat)
    return _report_header(result) + renderer.render(result.data)
