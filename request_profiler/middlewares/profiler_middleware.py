import logging
from collections.abc import Callable

import cython
from sentry_sdk import capture_exception
from starlette import status
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from request_profiler.config import PROFILER_BACKEND, PROFILER_BUSY_MESSAGE
from request_profiler.lib.measure_mode import ModeResolutionError, resolve_measure_mode
from request_profiler.lib.profile_report import format_report
from request_profiler.lib.profile_response import compose_response, format_failure
from request_profiler.lib.profiler_backend import load_profiler, unavailable_message
from request_profiler.models.profile_request import ProfileRequest
from request_profiler.models.profiler_backend import ProfilerBackend
from request_profiler.models.profiling import CapturedOutcome, CapturedResponse

type ProfilerGate = bool | Callable[[Request], bool]


class ProfilerMiddleware:
    """
    Request profiling middleware.

    Add profile=1 to the query params to receive the profiling report instead of the response.
    The report variant is selected with profile_report=flat|graph|graph_html
    and the measurement mode with profile_measure=<mode>.
    A bare profile parameter enables profiling, while profile=0, profile=false, profile=no
    and profile=off leave the request unprofiled.

    The enabled gate is a bool or a predicate of the request, for example disabling
    the profiler in production.
    A predicate that raises halts the request with a 500 diagnostic instead of calling the wrapped app.
    """

    __slots__ = ('app', 'backend', 'enabled')

    def __init__(
        self,
        app: ASGIApp,
        *,
        enabled: ProfilerGate = True,
        backend: ProfilerBackend = PROFILER_BACKEND,
    ) -> None:
        self.app = app
        self.enabled = enabled
        self.backend = backend

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope['type'] != 'http':
            return await self.app(scope, receive, send)

        request = Request(scope, receive)
        options = ProfileRequest.from_query_params(request.query_params)
        if not options.enabled:
            return await self.app(scope, receive, send)

        try:
            enabled = self._is_enabled(request)
        except Exception as e:
            logging.exception('Profiler gate failed')
            capture_exception(e)
            await _failure_response(e)(scope, receive, send)
            logging.debug('Profiler halted the request chain')
            return

        if not enabled:
            return await self.app(scope, receive, send)

        if not await self.profile(scope, receive, send, options):
            logging.debug('Profiler halted the request chain')

    def _is_enabled(self, request: Request) -> bool:
        enabled = self.enabled
        return enabled(request) if callable(enabled) else enabled

    async def profile(self, scope: Scope, receive: Receive, send: Send, options: ProfileRequest) -> bool:
        """
        Run the wrapped app inside a profiling session and send the report.

        Returns False when the chain was halted because profiling could not run or failed.
        Exactly one response is sent in every case.
        """
        response_sent: cython.bint = False

        async def send_response(response: Response) -> None:
            nonlocal response_sent
            response_sent = True
            await response(scope, receive, send)

        try:
            logging.info('Profiling %s %s with %s', scope['method'], scope['path'], self.backend)

            profiler = load_profiler(self.backend)
            if profiler is None:
                await send_response(PlainTextResponse(unavailable_message(self.backend)))
                return False

            mode = resolve_measure_mode(options.measure, profiler.backend)
            if isinstance(mode, ModeResolutionError):
                logging.warning('Profiling aborted: %s', mode)
                await send_response(compose_response(None, CapturedOutcome(None, mode), already_written=False))
                return True

            try:
                session = profiler.start(mode)
            except Exception:
                logging.warning('The %s profiler is busy', profiler.backend, exc_info=True)
                await send_response(PlainTextResponse(PROFILER_BUSY_MESSAGE))
                return False

            capture = _ResponseCapture()
            failure: Exception | None = None
            try:
                await self.app(scope, receive, capture)
            except Exception as e:
                failure = e
                logging.error('%s', format_failure(e))
            finally:
                result = session.stop()

            outcome = CapturedOutcome(capture.response(), failure)
            if outcome.output is not None:
                logging.debug(
                    'Replacing profiled response %d (%d bytes) with the report',
                    outcome.output.status,
                    len(outcome.output.body),
                )

            report = format_report(result, options.variant)
            await send_response(compose_response(report, outcome, already_written=capture.partial))
            return True

        except Exception as e:
            logging.exception('Request profiler failed')
            capture_exception(e)
            if not response_sent:
                await _failure_response(e)(scope, receive, send)
            return False


def _failure_response(failure: Exception) -> Response:
    return PlainTextResponse(format_failure(failure), status.HTTP_500_INTERNAL_SERVER_ERROR)


class _ResponseCapture:
    """ASGI send callable buffering the wrapped app's response."""

    __slots__ = ('body', 'complete', 'headers', 'started', 'status')

    def __init__(self) -> None:
        self.status: int = 0
        self.headers: list[tuple[bytes, bytes]] = []
        self.body = bytearray()
        self.started: cython.bint = False
        self.complete: cython.bint = False

    async def __call__(self, message: Message) -> None:
        if message['type'] == 'http.response.start':
            self.started = True
            self.status = message['status']
            self.headers = list(message.get('headers', ()))
        elif message['type'] == 'http.response.body':
            self.body += message.get('body', b'')
            if not message.get('more_body', False):
                self.complete = True

    @property
    def partial(self) -> bool:
        """Check if the response was started but not completed."""
        return self.started and not self.complete

    def response(self) -> CapturedResponse | None:
        if not self.started:
            return None
        return CapturedResponse(self.status, self.headers, bytes(self.body), self.started, self.complete)
