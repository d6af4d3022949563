# tests/test_container.py
import types

import pytest

from conftest import log_capture
from pico_testcontrol import api
from pico_testcontrol.config import get_control
from pico_testcontrol.container import BeanHandle, SimpleContainer
from pico_testcontrol.context import ExecutionContext
from pico_testcontrol.decorators import cleanup, component, control
from pico_testcontrol.exceptions import ScopeError
from pico_testcontrol.invoker import ContainerAwareMethodInvoker
from pico_testcontrol.scope import ScopeManager, ScopeStack


class Repo:
    def __init__(self):
        self.closed = False

    @cleanup
    def close(self):
        self.closed = True


class Service:
    repo: Repo


class Cart:
    items: list

    def __init__(self):
        self.items = []

    @cleanup
    def drop(self):
        self.items.clear()


class Broken:
    @cleanup
    def explode(self):
        raise RuntimeError("cleanup failed")


# --- ScopeStack / ScopeManager ---

def test_scope_stack_lifo():
    stack = ScopeStack()
    for name in ("a", "b", "c"):
        stack.push(name)
    assert "b" in stack and len(stack) == 3
    assert list(stack) == ["a", "b", "c"]
    assert [stack.pop(), stack.pop(), stack.pop()] == ["c", "b", "a"]
    assert not stack
    assert repr(stack) == "ScopeStack([])"


def test_scope_manager_activation():
    sm = ScopeManager()
    assert set(sm.names()) == {"request", "session", "conversation"}
    assert not sm.is_active("request")
    sid = sm.activate("request")
    assert sm.get_id("request") == sid
    assert sm.deactivate("request") == sid
    assert not sm.is_active("request")


@pytest.mark.parametrize("name", ["singleton", "application", "prototype", ""])
def test_scope_manager_rejects_reserved_names(name):
    with pytest.raises(ScopeError):
        ScopeManager().register_scope(name)


def test_scope_manager_rejects_container_scopes_and_unknown_names():
    sm = ScopeManager()
    with pytest.raises(ScopeError):
        sm.activate("singleton")
    with pytest.raises(ScopeError):
        sm.deactivate("application")
    with pytest.raises(ScopeError):
        sm.activate("tenant")
    sm.register_scope("tenant")
    sm.activate("tenant")
    assert sm.is_active("tenant")


# --- SimpleContainer ---

def test_singleton_instances_are_shared_and_fields_injected():
    c = SimpleContainer()
    c.register(Repo)
    c.register(Service)
    svc = c.get(Service)
    assert svc is c.get(Service)
    assert svc.repo is c.get(Repo)


def test_prototype_instances_are_fresh_and_dependent():
    c = SimpleContainer()
    handle = c.register(Repo, scope="prototype")
    assert handle.is_dependent
    assert c.create_instance(handle) is not c.create_instance(handle)


def test_request_scoped_requires_active_scope():
    c = SimpleContainer()
    handle = c.register(Cart, scope="request")
    with pytest.raises(ScopeError, match="request"):
        c.create_instance(handle)


def test_stopping_scope_runs_cleanup_of_its_instances():
    c = SimpleContainer()
    handle = c.register(Cart, scope="request")
    control_ = c.scope_control()
    control_.start_scope("request")
    cart = c.create_instance(handle)
    cart.items.append("apple")
    assert c.create_instance(handle) is cart

    control_.stop_scope("request")
    assert cart.items == []

    control_.start_scope("request")
    assert c.create_instance(handle) is not cart
    control_.stop_scope("request")


def test_custom_scope_registered_on_register():
    c = SimpleContainer()
    c.register(Cart, scope="tenant")
    assert "tenant" in c.scopes.names()


def test_dispose_and_shutdown_run_cleanup():
    c = SimpleContainer()
    proto = c.register(Repo, scope="prototype")
    transient = c.create_instance(proto)
    c.dispose_instance(proto, transient)
    assert transient.closed

    c2 = SimpleContainer()
    c2.register(Repo)
    c2.boot()
    shared = c2.get(Repo)
    c2.shutdown()
    assert shared.closed
    assert c2.get(Repo) is not shared


def test_failing_cleanup_is_logged():
    c = SimpleContainer()
    handle = c.register(Broken, scope="prototype")
    c.dispose_instance(handle, c.create_instance(handle))
    assert any(line.startswith("WARNING:Cleanup method Broken.explode failed") for line in log_capture)


def test_resolve_instances_includes_subclasses():
    class Base:
        pass

    class Impl(Base):
        pass

    c = SimpleContainer()
    c.register(Impl, primary=True)
    assert c.resolve_instances(Base) == {BeanHandle(Impl, "singleton", True)}
    assert isinstance(c.get(Base), Impl)


def test_inject_fields_leaves_set_and_unregistered_fields():
    c = SimpleContainer()
    c.register(Repo)
    svc = Service()
    mine = Repo()
    svc.repo = mine
    c.inject_fields(svc)
    assert svc.repo is mine

    cart = Cart()
    c.inject_fields(cart)
    assert cart.items == []


def test_scan_registers_components():
    pkg = types.ModuleType("pkg_components")

    @component
    class Clock:
        pass

    @component(scope="prototype", primary=True)
    class Ticket:
        pass

    class NotAComponent:
        pass

    pkg.__dict__.update(locals())
    c = SimpleContainer()
    assert c.scan([pkg]) == 2
    assert c.resolve_instances(Ticket) == {BeanHandle(Ticket, "prototype", True)}
    assert c.resolve_instances(NotAComponent) == set()


# --- End to end with the execution contexts ---

def test_request_scoped_test_class_through_contexts():
    c = SimpleContainer()
    api.use_container(c)
    seen = []

    @control(start_scopes=("request",))
    class CartTests:
        cart: Cart

        def test_add(self):
            self.cart.items.append("pear")
            seen.append(self.cart)

    c.register(Cart, scope="request")
    c.register(CartTests, scope="prototype")

    klass = ExecutionContext.enter_class_level(get_control(CartTests))
    klass.apply_before_class_config()
    for _ in range(2):
        method = ExecutionContext.enter_method_level(None, klass)
        method.apply_before_method_config()
        ContainerAwareMethodInvoker(CartTests.test_add, CartTests()).evaluate()
        method.apply_after_method_config()
    klass.apply_after_class_config()

    # one request scope per class here, shared by both methods
    assert seen[0] is seen[1]
    assert seen[0].items == []
    assert c.booted is False
