from logging.config import dictConfig
from typing import Literal

from githead import githead
from pydantic import Field

from request_profiler.lib.pydantic_settings_integration import pydantic_settings_integration
from request_profiler.models.profiler_backend import ProfilerBackend

# -------------------- System Configuration --------------------

# Core settings
ENV: Literal['dev', 'test', 'prod'] = 'prod'
LOG_LEVEL: Literal['DEBUG', 'INFO', 'WARNING'] | None = None

# -------------------- Profiler --------------------

# Gate (None: enabled outside of prod)
PROFILER_ENABLED: bool | None = None

# Engine
PROFILER_BACKEND = ProfilerBackend.cprofile
PROFILER_PYINSTRUMENT_INTERVAL: float = Field(0.001, gt=0)

# Query parameters
PROFILER_PARAM = 'profile'
PROFILER_REPORT_PARAM = 'profile_report'
PROFILER_MEASURE_PARAM = 'profile_measure'

# Reports
PROFILER_REPORT_LIMIT: int = Field(100, gt=0)
PROFILER_UNAVAILABLE_MESSAGE = 'Install {package} to use the request profiler'
PROFILER_BUSY_MESSAGE = 'The request profiler is busy, another profiled request is running'

pydantic_settings_integration(__name__, globals())

# -------------------- Constant or derived configuration --------------------

try:
    VERSION = 'git#' + githead()[:7]
except FileNotFoundError:
    VERSION = 'dev'  # pyright: ignore [reportConstantRedefinition]

NAME = 'request-profiler'

if PROFILER_ENABLED is None:
    PROFILER_ENABLED = ENV != 'prod'  # pyright: ignore[reportConstantRedefinition]

if LOG_LEVEL is None:
    LOG_LEVEL = 'INFO' if ENV == 'prod' else 'DEBUG'  # pyright: ignore[reportConstantRedefinition]

# -------------------- Logging configuration --------------------

dictConfig({
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'default': {
            '()': 'uvicorn.logging.DefaultFormatter',
            'fmt': '%(levelprefix)s | %(asctime)s | %(name)s %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S',
        },
    },
    'handlers': {
        'default': {
            'formatter': 'default',
            'class': 'logging.StreamHandler',
            'stream': 'ext://sys.stderr',
        },
    },
    'loggers': {
        'root': {'handlers': ['default'], 'level': LOG_LEVEL},
        **{
            # reduce logging verbosity of some modules
            module: {'handlers': [], 'level': 'INFO'}
            for module in (
                'httpx',
                'httpcore',
                'multipart',
                'python_multipart',
            )
        },
    },
})
