import logging

from fastapi import FastAPI
from starlette.responses import PlainTextResponse

import request_profiler.lib.sentry  # noqa: F401
from request_profiler.config import ENV, NAME, PROFILER_BACKEND, PROFILER_ENABLED, VERSION
from request_profiler.middlewares.profiler_middleware import ProfilerMiddleware

# log when in test environment
if ENV != 'prod':
    logging.info('🦺 Running in %s environment', ENV)

main = FastAPI(
    debug=ENV != 'prod',
    title=NAME,
    version=VERSION,
)

main.add_middleware(
    ProfilerMiddleware,
    enabled=PROFILER_ENABLED,
    backend=PROFILER_BACKEND,
)


@main.get('/', response_class=PlainTextResponse)
async def index() -> str:
    return f'{NAME} {VERSION}'
