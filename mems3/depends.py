"""Minimal typed dependency injection on top of FastAPI's Depends.

`bind(app, Config, config)` makes `config: Injected[Config]` resolve to that
instance in every route of `app`.
"""

from __future__ import annotations

from typing import Annotated, Any, Callable, TypeVar

from fastapi import Depends, FastAPI

T = TypeVar("T")

_providers: dict[Any, Callable[[], Any]] = {}


def _provider(tp: Any) -> Callable[[], Any]:
    try:
        return _providers[tp]
    except KeyError:
        pass

    def provide() -> Any:
        raise RuntimeError(f"No instance of {tp!r} was bound to this app")

    _providers[tp] = provide
    return provide


def bind(app: FastAPI, tp: type[T], instance: T) -> None:
    app.dependency_overrides[_provider(tp)] = lambda: instance


class Injected:
    def __class_getitem__(cls, tp: Any) -> Any:
        return Annotated[tp, Depends(_provider(tp))]
