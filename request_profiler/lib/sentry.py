import logging
from sys import modules

import sentry_sdk
from pydantic import Field

from request_profiler.config import ENV, VERSION
from request_profiler.lib.pydantic_settings_integration import pydantic_settings_integration

SENTRY_DSN = ''

SENTRY_TRACES_SAMPLE_RATE: float = Field(0.0, ge=0, le=1)

pydantic_settings_integration(
    __name__, globals(), name_filter=lambda name: name.startswith('SENTRY_')
)

if SENTRY_DSN and 'pytest' not in modules:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        release=VERSION,
        environment=ENV,
        keep_alive=True,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
    )
    logging.debug('Initialized Sentry SDK')
