import logging
from collections.abc import Callable
from sys import modules
from typing import Any, get_type_hints

from pydantic import create_model
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CONFIG = SettingsConfigDict(
    env_file='.env',
    env_file_encoding='utf-8',
    extra='ignore',
)


def _is_setting_name(name: str) -> bool:
    return name[:1] != '_' and name.isupper()


def pydantic_settings_integration(
    caller_name: str,
    caller_globals: dict[str, Any],
    /,
    config: SettingsConfigDict = _DEFAULT_CONFIG,
    name_filter: Callable[[str], bool] = _is_setting_name,
) -> None:
    """
    Load the calling module's upper-case globals from the environment.

    A pydantic-settings model is built from the globals (annotations become
    field types, values become defaults), populated from environment variables
    and the .env file, and the validated values are written back.
    """
    defaults = {k: v for k, v in caller_globals.items() if name_filter(k)}
    if not defaults:
        logging.warning('No settings found in %s matching the filter', caller_name)
        return

    type_hints = get_type_hints(modules[caller_name], defaults)
    fields: dict[str, tuple[Any, Any]] = {}
    for name, value in defaults.items():
        field_type = type_hints.get(name)
        if field_type is None:
            field_type = Any if isinstance(value, FieldInfo) else type(value)
        fields[name] = (field_type, value)

    settings_base = type(
        f'{caller_name}_SettingsBase',
        (BaseSettings,),
        {'model_config': config},
    )
    settings = create_model(
        f'{caller_name}_Settings',
        __base__=settings_base,
        **fields,  # type: ignore
    )()

    for name in settings.model_fields_set:
        logging.debug('Setting %s.%s loaded from environment', caller_name, name)

    for name in defaults:
        caller_globals[name] = getattr(settings, name)
