import pytest
from starlette import status

from request_profiler.lib.profile_response import compose_response, format_failure
from request_profiler.models.profiling import CapturedOutcome, CapturedResponse, RenderedReport


def _raise_failure() -> RuntimeError:
    try:
        raise RuntimeError('something <broke>')
    except RuntimeError as e:
        return e


_OUTPUT = CapturedResponse(200, [], b'Hello', started=True, complete=True)
_TEXT_REPORT = RenderedReport('flat report', 'text/plain')
_HTML_REPORT = RenderedReport('<table>report</table>', 'text/html')


def test_format_failure():
    text = format_failure(_raise_failure())
    lines = text.split('\n')
    assert lines[0] == 'AN ERROR HAS OCCURRED WHILE PROFILING:'
    assert lines[1] == 'RuntimeError: something <broke>'
    assert 'in _raise_failure' in text


def test_format_failure_html():
    text = format_failure(_raise_failure(), html=True)
    assert '\n' not in text
    assert text.startswith('AN ERROR HAS OCCURRED WHILE PROFILING:<br>RuntimeError: something &lt;broke&gt;<br>')


def test_format_failure_without_exception():
    assert format_failure(None) == 'AN ERROR HAS OCCURRED WHILE PROFILING:'


@pytest.mark.parametrize('report', [_TEXT_REPORT, _HTML_REPORT])
def test_compose_report_page(report):
    response = compose_response(report, CapturedOutcome(_OUTPUT), already_written=False)
    assert response.status_code == status.HTTP_200_OK
    assert response.body == report.content.encode()
    assert response.media_type == report.media_type
    assert response.headers['Cache-Control'] == 'no-store'


def test_compose_failure_page():
    outcome = CapturedOutcome(None, _raise_failure())
    response = compose_response(_TEXT_REPORT, outcome, already_written=False)
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.media_type == 'text/plain'

    body = bytes(response.body).decode()
    assert body.startswith('AN ERROR HAS OCCURRED WHILE PROFILING:\nRuntimeError: something <broke>')
    assert body.endswith('\n\n\nflat report')


def test_compose_failure_page_html():
    outcome = CapturedOutcome(None, _raise_failure())
    response = compose_response(_HTML_REPORT, outcome, already_written=False)
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.media_type == 'text/html'

    body = bytes(response.body).decode()
    assert 'something &lt;broke&gt;<br>' in body
    assert body.endswith('<table>report</table>')


def test_compose_already_written():
    response = compose_response(_TEXT_REPORT, CapturedOutcome(_OUTPUT), already_written=True)
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert bytes(response.body).decode() == 'AN ERROR HAS OCCURRED WHILE PROFILING:\n\n\nflat report'


def test_compose_without_report():
    outcome = CapturedOutcome(None, ValueError('Unknown measurement mode'))
    response = compose_response(None, outcome, already_written=False)
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.media_type == 'text/plain'
    assert bytes(response.body).decode() == (
        'AN ERROR HAS OCCURRED WHILE PROFILING:\nValueError: Unknown measurement mode'
    )
