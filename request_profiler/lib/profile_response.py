from html import escape
from traceback import format_tb

from starlette import status
from starlette.responses import Response

from request_profiler.models.profiling import CapturedOutcome, RenderedReport

_FAILURE_TITLE = 'AN ERROR HAS OCCURRED WHILE PROFILING:'


def format_failure(failure: BaseException | None, *, html: bool = False) -> str:
    """
    Format the failure details: title, exception class and message, and the traceback.

    >>> format_failure(ValueError('bad'))
    'AN ERROR HAS OCCURRED WHILE PROFILING:\\nValueError: bad'
    """
    lines = [_FAILURE_TITLE]
    if failure is not None:
        lines.append(f'{type(failure).__qualname__}: {failure}')
        trace = ''.join(format_tb(failure.__traceback__)).rstrip('\n')
        if trace:
            lines.append(trace)

    text = '\n'.join(lines)
    return escape(text).replace('\n', '<br>') if html else text


def compose_response(
    report: RenderedReport | None,
    outcome: CapturedOutcome,
    already_written: bool,
) -> Response:
    """
    Compose the final profiler response.

    A failure, a missing report, or a handler response that was already (partially) written
    produces an error page: failure details followed by the report, with status 500.
    Otherwise the report alone is returned.
    """
    media_type = 'text/plain' if report is None else report.media_type

    if report is None or already_written or outcome.failure is not None:
        content = format_failure(outcome.failure, html=media_type == 'text/html')
        if report is not None:
            content += '\n\n\n' + report.content
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        content = report.content
        status_code = status.HTTP_200_OK

    response = Response(content, status_code, media_type=media_type)
    # allow inline scripts of the html reports
    response.headers['Content-Security-Policy'] = ''
    response.headers['Cache-Control'] = 'no-store'
    return response
