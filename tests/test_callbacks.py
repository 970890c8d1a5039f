import pytest

from forkpool.process.callbacks import CallbackDispatch, FinishReport
from forkpool.process.utils import call_with_arity, positional_arity

REPORT = FinishReport(10, 3, "job", None, False, {"foo": "bar"})


def test_finish_handler_receives_leading_subset():
    dispatch = CallbackDispatch()
    seen = []
    dispatch.set_finish(lambda pid, code, label: seen.append((pid, code, label)))
    dispatch.finish(REPORT)
    assert seen == [(10, 3, "job")]


def test_finish_handler_full_report():
    dispatch = CallbackDispatch()
    seen = []

    def handler(pid, exit_code, label, signal, core_dumped, result):
        seen.append((pid, exit_code, label, signal, core_dumped, result))

    dispatch.set_finish(handler)
    dispatch.finish(REPORT)
    assert seen == [(10, 3, "job", None, False, {"foo": "bar"})]


def test_handler_wanting_more_gets_none():
    seen = []

    def greedy(a, b, c, d):
        seen.append((a, b, c, d))

    call_with_arity(greedy, (1, 2))
    assert seen == [(1, 2, None, None)]


def test_varargs_handler_gets_everything():
    seen = []
    call_with_arity(lambda *args: seen.append(args), (1, 2, 3))
    assert seen == [(1, 2, 3)]
    assert positional_arity(lambda *args: None) is None


def test_zero_arity_handler():
    seen = []
    call_with_arity(lambda: seen.append("called"), (1, 2, 3))
    assert seen == ["called"]


def test_defaults_are_not_overwritten():
    seen = []

    def handler(pid, label="unset"):
        seen.append((pid, label))

    call_with_arity(handler, (7,))
    assert seen == [(7, "unset")]


def test_bound_method_arity():
    class Collector:
        def __init__(self):
            self.items = []

        def on_start(self, pid, label):
            self.items.append((pid, label))

    collector = Collector()
    dispatch = CallbackDispatch()
    dispatch.set_start(collector.on_start)
    dispatch.start(5, "five")
    assert collector.items == [(5, "five")]


def test_per_pid_finish_handler_wins():
    dispatch = CallbackDispatch()
    seen = []
    dispatch.set_finish(lambda pid: seen.append(("default", pid)))
    dispatch.set_finish(lambda pid: seen.append(("specific", pid)), pid=10)
    dispatch.finish(REPORT)
    dispatch.finish(FinishReport(11, 0, "other", None, False))
    assert seen == [("specific", 10), ("default", 11)]


def test_reregistration_replaces_and_none_clears():
    dispatch = CallbackDispatch()
    seen = []
    dispatch.set_start(lambda pid: seen.append("first"))
    dispatch.set_start(lambda pid: seen.append("second"))
    dispatch.start(1, None)
    dispatch.set_start(None)
    dispatch.start(2, None)
    assert seen == ["second"]


def test_wait_period_validation():
    dispatch = CallbackDispatch()
    with pytest.raises(ValueError):
        dispatch.set_wait(lambda: None, 0)
    with pytest.raises(ValueError):
        dispatch.set_wait(lambda: None, -1.5)
    with pytest.raises(TypeError):
        dispatch.set_wait(lambda: None, "soon")
    with pytest.raises(TypeError):
        dispatch.set_wait("not callable", 0.1)
    dispatch.set_wait(lambda: None, 1)
    assert dispatch.wait_period == 1.0


def test_wait_runs_handler():
    dispatch = CallbackDispatch()
    calls = []
    dispatch.set_wait(lambda: calls.append(1), 0.001)
    dispatch.wait()
    dispatch.wait()
    assert calls == [1, 1]


def test_handler_errors_propagate():
    dispatch = CallbackDispatch()

    def broken(pid):
        raise KeyError(pid)

    dispatch.set_finish(broken)
    with pytest.raises(KeyError):
        dispatch.finish(REPORT)


def test_per_pid_finish_handler_fires_once():
    dispatch = CallbackDispatch()
    seen = []
    dispatch.set_finish(lambda pid: seen.append(("default", pid)))
    dispatch.set_finish(lambda pid: seen.append(("specific", pid)), pid=10)
    dispatch.finish(REPORT)
    # same pid handed out again to an unrelated child
    dispatch.finish(REPORT)
    assert seen == [("specific", 10), ("default", 10)]


def test_required_keyword_only_gets_none():
    seen = []

    def handler(pid, *, extra):
        seen.append((pid, extra))

    call_with_arity(handler, (1, 2))
    assert seen == [(1, None)]


def test_keyword_only_with_default_and_varargs():
    seen = []

    def handler(*args, extra, tag="kept"):
        seen.append((args, extra, tag))

    call_with_arity(handler, (1, 2))
    assert seen == [((1, 2), None, "kept")]
