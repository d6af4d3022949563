import logging

import pytest

from pico_testcontrol import api
from pico_testcontrol.constants import LOGGER
from pico_testcontrol.container import BeanHandle

log_capture: list[str] = []


class ListLogHandler(logging.Handler):
    def emit(self, record):
        log_capture.append(f"{record.levelname}:{record.getMessage()}")


@pytest.fixture(autouse=True)
def clean_state():
    api.reset()
    yield
    api.reset()


@pytest.fixture(autouse=True)
def reset_logging_capture(clean_state):
    log_capture.clear()
    handler = ListLogHandler()
    previous = LOGGER.level
    before = list(LOGGER.handlers)
    LOGGER.addHandler(handler)
    LOGGER.setLevel(logging.DEBUG)
    yield
    LOGGER.setLevel(previous)
    for h in list(LOGGER.handlers):
        if h not in before:
            LOGGER.removeHandler(h)


class RecordingScopeControl:
    def __init__(self, calls, fail_start=(), fail_stop=()):
        self.calls = calls
        self.fail_start = set(fail_start)
        self.fail_stop = set(fail_stop)

    def start_scope(self, name):
        if name in self.fail_start:
            raise RuntimeError(f"cannot start {name}")
        self.calls.append(("start", name))

    def stop_scope(self, name):
        if name in self.fail_stop:
            raise RuntimeError(f"cannot stop {name}")
        self.calls.append(("stop", name))


class RecordingContainer:
    """Container fake that records every lifecycle call in order."""

    def __init__(self, beans=None, fail_boot=False, fail_shutdown=False, fail_start=(), fail_stop=()):
        self.calls = []
        self.beans = dict(beans or {})
        self.fail_boot = fail_boot
        self.fail_shutdown = fail_shutdown
        self._scopes = RecordingScopeControl(self.calls, fail_start, fail_stop)
        self.created = []
        self.disposed = []
        self.injected = []

    def boot(self):
        if self.fail_boot:
            raise RuntimeError("boot exploded")
        self.calls.append(("boot",))

    def shutdown(self):
        self.calls.append(("shutdown",))
        if self.fail_shutdown:
            raise RuntimeError("shutdown exploded")

    def scope_control(self):
        return self._scopes

    def resolve_instances(self, bean_type):
        return set(self.beans.get(bean_type, ()))

    def create_instance(self, handle: BeanHandle):
        inst = handle.bean_type()
        self.created.append(inst)
        return inst

    def dispose_instance(self, handle, target):
        self.disposed.append(target)

    def inject_fields(self, target):
        self.injected.append(target)
        return target

    def scope_calls(self):
        return [c for c in self.calls if c[0] in ("start", "stop")]


@pytest.fixture
def container():
    c = RecordingContainer()
    api.use_container(c)
    return c
