from __future__ import annotations

import dataclasses
import os
import typing
from typing import Any, Callable, TypeVar

import dotenv

T = TypeVar("T")


def env(key: str, convert: Callable[[str], T] = typing.cast(Callable[[str], T], str), **kwargs: Any) -> T:
    """Dataclass field read from the environment, as `NAME` or `NAME:default`."""
    key, partition, default = key.partition(":")

    def default_factory() -> T:
        if key in os.environ:
            return convert(os.environ[key])
        if partition == ":":
            return convert(default)
        raise KeyError(key)

    return typing.cast(T, dataclasses.field(default_factory=default_factory, **kwargs))


@dataclasses.dataclass
class Config:
    # requests whose Host matches this are path-style, anything else is virtual-host style
    host: str = env("MEMS3_HOST:127.0.0.1")
    port: int = env("MEMS3_PORT:9000", convert=int)

    # accepted but never checked
    access_key: str = env("MEMS3_ACCESS_KEY:minioadmin")
    secret_key: str = env("MEMS3_SECRET_KEY:minioadmin")
    region: str = env("MEMS3_REGION:us-east-1")

    log_level: str = env("MEMS3_LOG_LEVEL:INFO")


def load_config() -> Config:
    dotenv.load_dotenv()
    return Config()
