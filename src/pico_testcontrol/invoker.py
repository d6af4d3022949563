"""Container-aware invocation of a test method."""

import unittest
from typing import Any, Callable, Mapping, Optional

from .constants import LOGGER
from .container import select_bean
from .exceptions import MethodInvocationError
from .statements import Statement


def _default_container() -> Any:
    from .api import get_container

    return get_container()


def declaring_class(test_class: type, fn: Callable[..., Any]) -> type:
    """Return the class in ``test_class.__mro__`` that defines *fn*."""
    name = getattr(fn, "__name__", None)
    for klass in test_class.__mro__:
        attr = klass.__dict__.get(name)
        if attr is fn or getattr(attr, "__func__", None) is fn:
            return klass
    return test_class


class ContainerAwareMethodInvoker(Statement):
    """Runs a test method on the container-managed instance of its class.

    If the container has no bean for the class declaring the method, the
    original test object gets its fields injected and runs the method
    itself; nothing is disposed in that case. Otherwise one bean is
    selected, the method runs on the managed instance, and a dependent
    (prototype) instance is disposed afterwards whatever the outcome.

    Exceptions raised by the method surface as
    :class:`~pico_testcontrol.exceptions.MethodInvocationError` chained to
    the original error. ``unittest.SkipTest`` and non-``Exception``
    throwables (pytest outcomes, ``KeyboardInterrupt``) pass through.

    Args:
        method: The test function (plain or bound).
        original_target: The test object created by the runner, or
            ``None`` for module-level test functions.
        arguments: Keyword arguments for the call (pytest fixtures).
        container_provider: Zero-argument callable returning the container.
    """

    def __init__(
        self,
        method: Callable[..., Any],
        original_target: Any,
        *,
        arguments: Optional[Mapping[str, Any]] = None,
        container_provider: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.method = getattr(method, "__func__", method)
        self.original_target = original_target
        self.arguments = dict(arguments or {})
        self._container_provider = container_provider or _default_container

    @property
    def method_name(self) -> str:
        return getattr(self.method, "__qualname__", repr(self.method))

    def evaluate(self) -> None:
        if self.original_target is None:
            self._invoke(None)
            return

        container = self._container_provider()
        bean_type = declaring_class(type(self.original_target), self.method)
        beans = container.resolve_instances(bean_type)

        if not beans:
            container.inject_fields(self.original_target)
            self._invoke(self.original_target)
            return

        handle = select_bean(beans, bean_type)
        target = container.create_instance(handle)
        try:
            self._invoke(target)
        finally:
            if handle.is_dependent:
                LOGGER.debug("Disposing dependent instance of %s", handle.bean_type.__name__)
                container.dispose_instance(handle, target)

    def _invoke(self, target: Any) -> None:
        try:
            if target is None:
                self.method(**self.arguments)
            else:
                self.method(target, **self.arguments)
        except unittest.SkipTest:
            raise
        except Exception as e:
            raise MethodInvocationError(self.method_name, e) from e
