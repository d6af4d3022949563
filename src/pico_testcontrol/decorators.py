# pico_testcontrol/decorators.py
from __future__ import annotations

import logging
from typing import Iterable, Optional, Type, Union

from .config import TestControl
from .constants import (
    EXTERNAL_CONTAINER_FLAG,
    PICO_CONTROL,
    PICO_META,
    PICO_TIMEOUT,
    SCOPE_SINGLETON,
    STATEMENT_DECORATOR_FLAG,
)
from .project_stage import ProjectStage


def control(
    obj=None,
    *,
    start_scopes: Union[str, Iterable[str]] = (),
    project_stage: Union[str, ProjectStage] = ProjectStage.UNIT_TEST,
    start_external_containers: bool = True,
    log_handler: Optional[Type[logging.Handler]] = None,
):
    """Declare an explicit :class:`TestControl` on a test class or test method.

    Usable bare (``@control``) or with arguments::

        @control(start_scopes=("request",), project_stage="Development")
        class TestOrders:
            ...
    """
    settings = TestControl(
        start_scopes=(start_scopes,) if isinstance(start_scopes, str) else tuple(start_scopes),
        project_stage=project_stage,
        start_external_containers=start_external_containers,
        log_handler=log_handler,
    )

    def dec(target):
        setattr(target, PICO_CONTROL, settings)
        return target

    return dec(obj) if obj is not None else dec


def timeout(seconds: float):
    """Declare a per-method timeout. Container-managed runners reject it."""
    def dec(fn):
        setattr(fn, PICO_TIMEOUT, float(seconds))
        return fn
    return dec


def external_container(cls):
    setattr(cls, EXTERNAL_CONTAINER_FLAG, True)
    return cls


def statement_decorator(cls):
    setattr(cls, STATEMENT_DECORATOR_FLAG, True)
    return cls


def component(cls=None, *, scope: str = SCOPE_SINGLETON, primary: bool = False):
    """Mark a class for registration in :class:`~pico_testcontrol.container.SimpleContainer`."""
    def dec(c):
        meta = dict(c.__dict__.get(PICO_META, {}))
        meta.update({"component": True, "scope": scope, "primary": bool(primary)})
        setattr(c, PICO_META, meta)
        return c
    return dec(cls) if cls else dec


def cleanup(fn):
    """Mark a method to run when its instance is disposed, its scope stops or the container shuts down."""
    meta = getattr(fn, PICO_META, None)
    if meta is None:
        meta = {}
        setattr(fn, PICO_META, meta)
    meta["cleanup"] = True
    return fn


__all__ = [
    "control", "timeout",
    "external_container", "statement_decorator",
    "component", "cleanup",
]
