"""
Engine configuration.

The configuration is assembled from, in increasing order of precedence:
the defaults, a yaml file, `STEWARD_*` environment variables and explicit
overrides (e.g. from the command line).

Durations are given in seconds, either as numbers or as strings with one
of the suffixes `ms`, `s`, `m` or `h`, e.g. `500ms` or `5m`.
"""

import pathlib
import re
import typing

import pydantic
import yaml

from pydantic import BeforeValidator, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
from typing_extensions import Annotated

from .exceptions import ConfigError


__all__ = [
    'DEFAULT_FINALIZER',
    'EngineConfig',
    'load_config',
    'parse_duration',
]

DEFAULT_FINALIZER = 'steward.io/finalizer'

ENV_PREFIX = 'STEWARD_'

_DURATION_RE = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$')
_DURATION_UNITS = {'ms': 0.001, 's': 1, 'm': 60, 'h': 3600, None: 1}


def _to_seconds(value):
    if isinstance(value, bool):
        raise ValueError(f'invalid duration: {value!r}')
    if isinstance(value, (int, float)):
        return float(value)
    match = _DURATION_RE.match(str(value))
    if match is None:
        raise ValueError(f'invalid duration: {value!r}')
    number, unit = match.groups()
    return float(number) * _DURATION_UNITS[unit]


def parse_duration(value):
    """Parse a duration into seconds."""
    try:
        return _to_seconds(value)
    except ValueError as e:
        raise ConfigError(str(e)) from e


Duration = Annotated[float, BeforeValidator(_to_seconds), Field(gt=0)]


def _read_file(path):
    path = pathlib.Path(path)
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f'can not read config file {path}: {e}') from e
    except yaml.YAMLError as e:
        raise ConfigError(f'invalid yaml in config file {path}: {e}') from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f'config file {path} must contain a mapping')
    if 'steward' in data:
        data = data['steward'] or {}
        if not isinstance(data, dict):
            raise ConfigError(f'"steward" section in {path} must be a mapping')
    return data


class YamlFileSettingsSource(PydanticBaseSettingsSource):
    """Settings from a yaml file, optionally below a `steward:` key."""

    def __init__(self, settings_cls, path=None):
        super().__init__(settings_cls)
        self.path = path
        self._data = None

    def _load(self):
        if self._data is None:
            self._data = _read_file(self.path) if self.path is not None else {}
        return self._data

    def get_field_value(self, field, field_name):
        return self._load().get(field_name), field_name, False

    def __call__(self):
        return dict(self._load())


class EngineConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        extra='forbid',
    )

    # Finalizer token the engine adds to every primary resource.
    finalizer: str = DEFAULT_FINALIZER
    # Requeue interval while managed resources are still converging.
    requeue_interval: Duration = 60
    # Requeue interval after a terminal state, for drift detection only.
    terminal_requeue_interval: Duration = 300
    # Requeue interval while managed resources are being removed.
    removed_requeue_interval: Duration = 5
    # Exponential backoff after errors: base_backoff * 2^failures.
    base_backoff: Duration = 0.005
    max_backoff: Duration = 1000
    # Overall rate limit of the workqueue.
    bucket_capacity: int = Field(default=100, ge=1)
    bucket_rate: float = Field(default=10, gt=0)
    # Number of workers reconciling requests concurrently.
    worker_count: int = Field(default=1, ge=1)
    # Deadline of a single reconciliation.
    reconcile_timeout: Duration = 60
    # The yaml file the settings were read from.
    config_file: typing.Optional[pathlib.Path] = Field(default=None, exclude=True)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        path = init_settings.init_kwargs.get('config_file')
        return (init_settings, env_settings, YamlFileSettingsSource(settings_cls, path))

    @field_validator('finalizer')
    @classmethod
    def _check_finalizer(cls, value):
        if not value or '/' not in value:
            raise ValueError(f'must be a qualified name like "example.com/finalizer", got {value!r}')
        return value

    @model_validator(mode='after')
    def _check_backoff(self):
        if self.base_backoff > self.max_backoff:
            raise ValueError(
                f'base_backoff ({self.base_backoff}) must not exceed max_backoff ({self.max_backoff})'
            )
        return self

    def to_yaml(self):
        return yaml.safe_dump(self.model_dump(mode='json'), sort_keys=False)

    def rate_limiter(self):
        from .workqueue import default_rate_limiter
        return default_rate_limiter(
            base_delay=self.base_backoff,
            max_delay=self.max_backoff,
            capacity=self.bucket_capacity,
            rate=self.bucket_rate,
        )


def load_config(path=None, **overrides):
    """Load the engine configuration.

    Values from the yaml file at `path` override the defaults, `STEWARD_*`
    environment variables override the file and keyword arguments override
    everything. Overrides that are None are ignored.
    """
    overrides = {k: v for k, v in overrides.items() if v is not None}
    try:
        return EngineConfig(config_file=path, **overrides)
    except pydantic.ValidationError as e:
        raise ConfigError(f'invalid configuration: {e}') from e
