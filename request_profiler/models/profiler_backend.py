from enum import StrEnum


class ProfilerBackend(StrEnum):
    cprofile = 'cprofile'
    pyinstrument = 'pyinstrument'
