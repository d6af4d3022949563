"""Container-aware runners for plain test classes.

:class:`ContainerTestRunner` runs the ``test*`` methods of one class inside
a class-level :class:`~pico_testcontrol.context.ExecutionContext`;
:class:`ContainerTestSuiteRunner` runs several classes under a suite-level
context that owns a single container boot/shutdown for all of them.

Statement composition for one method, innermost first::

    invoker -> timeout override -> setup_method -> hook chain (before)
            -> teardown_method -> hook chain (after)
"""

import inspect
import logging
import unittest
from typing import Any, Callable, Iterable, List, Optional

from .config import TestControl, get_control
from .constants import LOGGER
from .context import ExecutionContext
from .exceptions import ConfigurationError, ContainerBootError
from .gatekeeper import ContainerGatekeeper, gatekeeper as _default_gatekeeper
from .invoker import ContainerAwareMethodInvoker
from .notification import Description, Failure, NotifierRegistry, RunNotifier, notifier_registry as _default_registry
from .statements import FunctionStatement, HookChain, RejectTimeout, RunAfters, RunBefores, Statement, timeout_of


def attach_log_handler(handler_cls: Optional[type]) -> Optional[logging.Handler]:
    """Attach one instance of *handler_cls* to the package logger, unless one is attached."""
    if handler_cls is None:
        return None
    for existing in LOGGER.handlers:
        if type(existing) is handler_cls:
            return existing
    try:
        handler = handler_cls()
    except Exception as e:
        raise ConfigurationError(f"Cannot instantiate log handler {handler_cls.__name__}: {e}") from e
    LOGGER.addHandler(handler)
    return handler


class BeforeClassStatement(Statement):
    def __init__(self, statement: Statement, context: ExecutionContext) -> None:
        self.wrapped = statement
        self.context = context

    def evaluate(self) -> None:
        self.context.apply_before_class_config()
        self.wrapped.evaluate()


class AfterClassStatement(Statement):
    def __init__(self, statement: Statement, context: ExecutionContext) -> None:
        self.wrapped = statement
        self.context = context

    def evaluate(self) -> None:
        try:
            self.wrapped.evaluate()
        finally:
            self.context.apply_after_class_config()


class ContainerTestRunner:
    def __init__(
        self,
        test_class: type,
        *,
        parent_context: Optional[ExecutionContext] = None,
        hook_chain: Optional[HookChain] = None,
        gatekeeper: Optional[ContainerGatekeeper] = None,
        registry: Optional[NotifierRegistry] = None,
        container_provider: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.test_class = test_class
        self.gatekeeper = gatekeeper or _default_gatekeeper
        self.registry = registry or _default_registry
        self.test_context = ExecutionContext.enter_class_level(
            get_control(test_class),
            parent_context,
            name=test_class.__qualname__,
            gatekeeper=self.gatekeeper,
            container_provider=container_provider,
        )
        attach_log_handler(self.test_context.log_handler)
        self.hook_chain = hook_chain if hook_chain is not None else HookChain.discover()

    def description(self) -> Description:
        return Description.for_class(self.test_class)

    def test_methods(self) -> List[Callable[..., Any]]:
        methods = []
        for name in sorted(dir(self.test_class)):
            if not name.startswith("test"):
                continue
            attr = inspect.getattr_static(self.test_class, name)
            if inspect.isfunction(attr):
                methods.append(attr)
        return methods

    def run(self, notifier: RunNotifier) -> None:
        if not self.gatekeeper.is_container_started():
            self.registry.register_once(notifier)
        try:
            self.class_block(notifier).evaluate()
        except ContainerBootError:
            raise
        except Exception as e:
            notifier.fire_test_failure(Failure(self.description(), e))
        finally:
            # outside a suite the next class run registers its listener again
            if not self.gatekeeper.suite_running:
                self.registry.clear_all()

    def class_block(self, notifier: RunNotifier) -> Statement:
        statement: Statement = FunctionStatement(lambda: self.run_children(notifier))
        statement = self.with_before_classes(statement)
        statement = self.with_after_classes(statement)
        return statement

    def with_before_classes(self, statement: Statement) -> Statement:
        setup = getattr(self.test_class, "setup_class", None)
        if callable(setup):
            statement = RunBefores(statement, [setup])
        return BeforeClassStatement(statement, self.test_context)

    def with_after_classes(self, statement: Statement) -> Statement:
        teardown = getattr(self.test_class, "teardown_class", None)
        if callable(teardown):
            statement = RunAfters(statement, [teardown])
        return AfterClassStatement(statement, self.test_context)

    def run_children(self, notifier: RunNotifier) -> None:
        for method in self.test_methods():
            self.run_child(method, notifier)

    def run_child(self, method: Callable[..., Any], notifier: RunNotifier) -> None:
        description = Description.for_method(self.test_class, method.__name__)
        method_context = ExecutionContext.enter_method_level(
            get_control(method), self.test_context, name=method.__qualname__
        )
        method_context.apply_before_method_config()
        try:
            self.run_leaf(lambda: self.method_block(method), description, notifier)
        finally:
            method_context.apply_after_method_config()

    def run_leaf(self, block: Callable[[], Statement], description: Description, notifier: RunNotifier) -> None:
        notifier.fire_test_started(description)
        try:
            block().evaluate()
        except unittest.SkipTest:
            notifier.fire_test_ignored(description)
        except Exception as e:
            notifier.fire_test_failure(Failure(description, e))
        finally:
            notifier.fire_test_finished(description)

    def create_test(self) -> Any:
        return self.test_class()

    def method_block(self, method: Callable[..., Any]) -> Statement:
        target = self.create_test()
        statement = self.method_invoker(method, target)
        statement = self.with_potential_timeout(method, target, statement)
        statement = self.with_befores(method, target, statement)
        statement = self.with_afters(method, target, statement)
        return statement

    def method_invoker(self, method: Callable[..., Any], target: Any) -> Statement:
        return ContainerAwareMethodInvoker(method, target, container_provider=self.test_context.container)

    def with_potential_timeout(self, method: Callable[..., Any], target: Any, statement: Statement) -> Statement:
        seconds = timeout_of(method)
        if seconds:
            return RejectTimeout(method.__qualname__, seconds)
        return statement

    def with_befores(self, method: Callable[..., Any], target: Any, statement: Statement) -> Statement:
        setup = getattr(target, "setup_method", None)
        if callable(setup):
            statement = RunBefores(statement, [lambda: setup(method)])
        return self.hook_chain.wrap_before(statement, self.test_class, target)

    def with_afters(self, method: Callable[..., Any], target: Any, statement: Statement) -> Statement:
        teardown = getattr(target, "teardown_method", None)
        if callable(teardown):
            statement = RunAfters(statement, [lambda: teardown(method)])
        return self.hook_chain.wrap_after(statement, self.test_class, target)


class ContainerTestSuiteRunner:
    """Runs several test classes against one container boot.

    The suite-level context boots the container before the first class and
    marks the suite as running, which keeps class-level contexts from
    shutting it down. The container is shut down once all classes ran.
    """

    def __init__(
        self,
        test_classes: Iterable[type],
        *,
        control: Optional[TestControl] = None,
        hook_chain: Optional[HookChain] = None,
        gatekeeper: Optional[ContainerGatekeeper] = None,
        registry: Optional[NotifierRegistry] = None,
        container_provider: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.test_classes = list(test_classes)
        self.gatekeeper = gatekeeper or _default_gatekeeper
        self.registry = registry or _default_registry
        self.suite_context = ExecutionContext.enter_suite_level(
            control, name="suite", gatekeeper=self.gatekeeper, container_provider=container_provider
        )
        attach_log_handler(self.suite_context.log_handler)
        self.hook_chain = hook_chain if hook_chain is not None else HookChain.discover()

    def run(self, notifier: RunNotifier) -> None:
        self.registry.register_once(notifier)
        self.suite_context.apply_before_class_config()
        self.gatekeeper.begin_suite()
        try:
            for test_class in self.test_classes:
                runner = ContainerTestRunner(
                    test_class,
                    parent_context=self.suite_context,
                    hook_chain=self.hook_chain,
                    gatekeeper=self.gatekeeper,
                    registry=self.registry,
                )
                runner.run(notifier)
        finally:
            self.gatekeeper.end_suite()
            try:
                self.suite_context.apply_after_class_config()
            finally:
                self.registry.clear_all()
