# tests/test_notification.py
import threading

from conftest import log_capture
from pico_testcontrol.notification import (
    Description,
    Failure,
    LogRunListener,
    NotifierRegistry,
    RunListener,
    RunNotifier,
)


class RecordingListener(RunListener):
    def __init__(self):
        self.events = []

    def test_started(self, description):
        self.events.append(("started", description.display_name))

    def test_finished(self, description):
        self.events.append(("finished", description.display_name))

    def test_failure(self, failure):
        self.events.append(("failure", failure.description.display_name))

    def test_ignored(self, description):
        self.events.append(("ignored", description.display_name))


class ExplodingListener(RunListener):
    def test_started(self, description):
        raise RuntimeError("listener bug")


class SampleTests:
    pass


def test_description_names():
    cls_desc = Description.for_class(SampleTests)
    m_desc = Description.for_method(SampleTests, "test_x")
    assert cls_desc.display_name == f"{__name__}.SampleTests"
    assert m_desc.display_name == f"{__name__}.SampleTests::test_x"
    assert m_desc.method_name == "test_x"


def test_failure_message_prefers_text():
    d = Description("A", "b")
    assert Failure(d, ValueError("boom")).message == "boom"
    assert Failure(d, ValueError("boom"), text="long report").message == "long report"


def test_notifier_fans_out_to_listeners_in_order():
    notifier = RunNotifier()
    first, second = RecordingListener(), RecordingListener()
    notifier.add_listener(first)
    notifier.add_listener(second)
    d = Description("A", "t")

    notifier.fire_test_started(d)
    notifier.fire_test_failure(Failure(d, AssertionError()))
    notifier.fire_test_ignored(d)
    notifier.fire_test_finished(d)

    expected = [("started", "A::t"), ("failure", "A::t"), ("ignored", "A::t"), ("finished", "A::t")]
    assert first.events == expected
    assert second.events == expected


def test_failing_listener_is_removed_and_others_still_notified():
    notifier = RunNotifier()
    bad, good = ExplodingListener(), RecordingListener()
    notifier.add_listener(bad)
    notifier.add_listener(good)

    notifier.fire_test_started(Description("A", "t"))
    notifier.fire_test_started(Description("A", "u"))

    assert good.events == [("started", "A::t"), ("started", "A::u")]
    assert notifier.listeners == [good]
    assert any(line.startswith("WARNING:Run listener") for line in log_capture)


def test_log_run_listener_writes_info_lines():
    listener = LogRunListener()
    d = Description("A", "t")
    listener.test_started(d)
    listener.test_failure(Failure(d, ValueError("bad")))
    listener.test_ignored(d)
    listener.test_finished(d)
    assert log_capture == [
        "INFO:[run] A::t",
        "INFO:[failed] A::t: bad",
        "INFO:[ignored] A::t",
        "INFO:[finished] A::t",
    ]


# --- Registry ---

def test_register_once_attaches_a_single_listener():
    registry = NotifierRegistry(RecordingListener)
    notifier = RunNotifier()
    assert registry.register_once(notifier) is True
    assert registry.register_once(notifier) is False
    assert len(notifier.listeners) == 1
    assert registry.is_registered(notifier)
    assert len(registry) == 1


def test_registry_keys_by_identity_not_equality():
    class EqualNotifier(RunNotifier):
        def __eq__(self, other):
            return True

        __hash__ = object.__hash__

    registry = NotifierRegistry(RecordingListener)
    a, b = EqualNotifier(), EqualNotifier()
    assert registry.register_once(a) is True
    assert registry.register_once(b) is True
    assert len(registry) == 2


def test_clear_all_forgets_and_detaches():
    registry = NotifierRegistry(RecordingListener)
    notifier = RunNotifier()
    registry.register_once(notifier)
    registry.clear_all()

    assert len(registry) == 0
    assert notifier.listeners == []
    assert registry.register_once(notifier) is True
    assert len(notifier.listeners) == 1


def test_concurrent_register_once_attaches_exactly_one_listener():
    registry = NotifierRegistry(RecordingListener)
    notifier = RunNotifier()
    n = 32
    barrier = threading.Barrier(n)
    results = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        attached = registry.register_once(notifier)
        with lock:
            results.append(attached)

    threads = [threading.Thread(target=worker) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert len(notifier.listeners) == 1
    assert len(registry) == 1
