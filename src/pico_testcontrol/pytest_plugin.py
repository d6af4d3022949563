"""pytest integration.

Enabled with ``--testcontrol`` (or ``testcontrol = true`` in the ini file).
Each test class, or each module for plain test functions, runs inside a
class-level execution context; every test item runs inside a method-level
context spanning its setup, call and teardown. The test call itself goes
through the statement decorator chain and the container-aware invoker;
for plain functions the decorators receive the module in place of a class.

With ``--testcontrol-suite`` the session owns the container: it boots once
at session start and shuts down at session finish.
"""

import inspect
import os
from typing import Any, Dict, Optional

import pytest

from .config import TestControl, get_control, load_control
from .constants import ENV_CONFIG, LOGGER
from .context import ExecutionContext
from .gatekeeper import gatekeeper
from .invoker import ContainerAwareMethodInvoker
from .notification import Description, Failure, RunNotifier, notifier_registry
from .plugins import configure_modules
from .runner import attach_log_handler
from .statements import HookChain, RejectTimeout, timeout_of

_PLUGIN_NAME = "pico-testcontrol"
_MODULE_CONTROL_ATTR = "testcontrol"


def pytest_addoption(parser: Any) -> None:
    group = parser.getgroup("testcontrol", "container-managed test control")
    group.addoption(
        "--testcontrol",
        action="store_true",
        default=False,
        help="run tests inside container-managed execution contexts",
    )
    group.addoption(
        "--testcontrol-suite",
        action="store_true",
        default=False,
        help="boot the container once for the whole session",
    )
    group.addoption(
        "--testcontrol-config",
        default=None,
        help=f"JSON/YAML file with the session-level testcontrol settings (default: ${ENV_CONFIG})",
    )
    parser.addini("testcontrol", type="bool", default=False, help="enable pico-testcontrol")
    parser.addini("testcontrol_modules", type="linelist", default=[], help="modules scanned for testcontrol extensions")


def pytest_configure(config: Any) -> None:
    if not (config.getoption("testcontrol") or config.getini("testcontrol")):
        return
    if not config.pluginmanager.has_plugin(_PLUGIN_NAME):
        config.pluginmanager.register(ControlPlugin(config), _PLUGIN_NAME)


def _owner_of(item: Any) -> Any:
    return getattr(item, "cls", None) or getattr(item, "module", None)


def _control_of_owner(owner: Any) -> Optional[TestControl]:
    if isinstance(owner, type):
        return get_control(owner)
    declared = getattr(owner, _MODULE_CONTROL_ATTR, None)
    return declared if isinstance(declared, TestControl) else None


def _describe(nodeid: str) -> Description:
    owner, sep, name = nodeid.rpartition("::")
    return Description(owner, name) if sep else Description(nodeid)


class ControlPlugin:
    """Per-session plugin object that drives the execution contexts."""

    def __init__(self, config: Any) -> None:
        self.config = config
        modules = config.getini("testcontrol_modules")
        if modules:
            configure_modules(modules)
        self.notifier = RunNotifier()
        self.hook_chain = HookChain.discover()
        self.suite_mode = bool(config.getoption("testcontrol_suite"))
        self.suite_context: Optional[ExecutionContext] = None
        self._owner: Any = None
        self._class_context: Optional[ExecutionContext] = None
        self._method_contexts: Dict[str, ExecutionContext] = {}

    def _suite_control(self) -> Optional[TestControl]:
        path = self.config.getoption("testcontrol_config") or os.environ.get(ENV_CONFIG)
        return load_control(path) if path else None

    @pytest.hookimpl(tryfirst=True)
    def pytest_sessionstart(self, session: Any) -> None:
        if not self.suite_mode:
            return
        notifier_registry.register_once(self.notifier)
        self.suite_context = ExecutionContext.enter_suite_level(self._suite_control(), name="session")
        attach_log_handler(self.suite_context.log_handler)
        self.suite_context.apply_before_class_config()
        gatekeeper.begin_suite()

    @pytest.hookimpl(trylast=True)
    def pytest_sessionfinish(self, session: Any, exitstatus: int) -> None:
        self._leave_class()
        if self.suite_context is None:
            return
        gatekeeper.end_suite()
        try:
            self.suite_context.apply_after_class_config()
        finally:
            self.suite_context = None
            notifier_registry.clear_all()

    def _enter_class(self, owner: Any) -> None:
        if not gatekeeper.is_container_started():
            notifier_registry.register_once(self.notifier)
        name = getattr(owner, "__qualname__", None) or getattr(owner, "__name__", str(owner))
        context = ExecutionContext.enter_class_level(_control_of_owner(owner), self.suite_context, name=name)
        attach_log_handler(context.log_handler)
        self._owner = owner
        self._class_context = context
        context.apply_before_class_config()

    def _leave_class(self) -> None:
        context = self._class_context
        if context is None:
            return
        self._owner = None
        self._class_context = None
        try:
            context.apply_after_class_config()
        finally:
            if not gatekeeper.suite_running:
                notifier_registry.clear_all()

    @pytest.hookimpl(hookwrapper=True, tryfirst=True)
    def pytest_runtest_setup(self, item: Any):
        function = getattr(item, "function", None)
        if function is None:
            yield
            return
        owner = _owner_of(item)
        if self._class_context is None or owner is not self._owner:
            self._leave_class()
            self._enter_class(owner)
        context = ExecutionContext.enter_method_level(get_control(function), self._class_context, name=item.nodeid)
        self._method_contexts[item.nodeid] = context
        context.apply_before_method_config()
        yield

    @pytest.hookimpl(hookwrapper=True, tryfirst=True)
    def pytest_pyfunc_call(self, pyfuncitem: Any):
        function = getattr(pyfuncitem, "function", None)
        if function is None or inspect.iscoroutinefunction(function):
            yield
            return

        original = pyfuncitem.obj
        # plain test functions hand their module to the statement decorators
        owner = _owner_of(pyfuncitem)
        target = getattr(pyfuncitem, "instance", None)
        seconds = timeout_of(function)
        if seconds is None:
            marker = pyfuncitem.get_closest_marker("timeout")
            if marker is not None:
                seconds = float((marker.args[0] if marker.args else marker.kwargs.get("timeout", 0)) or 0)

        def run(**funcargs: Any) -> None:
            if seconds:
                statement = RejectTimeout(function.__qualname__, seconds)
            else:
                statement = ContainerAwareMethodInvoker(function, target, arguments=funcargs)
            if owner is not None:
                statement = self.hook_chain.wrap_before(statement, owner, target)
                statement = self.hook_chain.wrap_after(statement, owner, target)
            statement.evaluate()

        pyfuncitem.obj = run
        try:
            yield
        finally:
            pyfuncitem.obj = original

    @pytest.hookimpl(hookwrapper=True, tryfirst=True)
    def pytest_runtest_teardown(self, item: Any, nextitem: Any):
        yield
        context = self._method_contexts.pop(item.nodeid, None)
        try:
            if context is not None:
                context.apply_after_method_config()
        finally:
            if self._class_context is not None and (nextitem is None or _owner_of(nextitem) is not self._owner):
                self._leave_class()

    def pytest_runtest_logstart(self, nodeid: str, location: Any) -> None:
        self.notifier.fire_test_started(_describe(nodeid))

    def pytest_runtest_logreport(self, report: Any) -> None:
        description = _describe(report.nodeid)
        if report.failed:
            self.notifier.fire_test_failure(Failure(description, text=report.longreprtext))
        elif report.skipped and report.when in ("setup", "call"):
            self.notifier.fire_test_ignored(description)

    def pytest_runtest_logfinish(self, nodeid: str, location: Any) -> None:
        self.notifier.fire_test_finished(_describe(nodeid))

    def pytest_unconfigure(self, config: Any) -> None:
        if self._class_context is not None or self.suite_context is not None:
            LOGGER.warning("pico-testcontrol: session ended with open execution contexts")
