import threading

from apimanager.errors import APIError, ErrorKind
from apimanager.models import Failed, InProgress, Item, Success
from apimanager.signal import MainContext, Signal


def test_listeners_receive_events_in_order():
    signal = Signal()
    seen = []
    signal.subscribe(seen.append)

    assert signal.fire(InProgress())
    assert signal.fire(Success(data=Item(value=1)))

    assert seen == [InProgress(), Success(data=Item(value=1))]
    assert signal.done
    assert signal.result == Success(data=Item(value=1))


def test_events_after_terminal_are_dropped():
    signal = Signal()
    seen = []
    signal.subscribe(seen.append)

    signal.fire(Failed(error=APIError(ErrorKind.CLIENT_ERROR)))
    assert signal.fire(InProgress()) is False
    assert signal.fire(Success(data=Item(value=None))) is False

    assert len(seen) == 1
    assert signal.events == seen


def test_late_subscriber_gets_terminal_outcome():
    signal = Signal()
    outcome = Success(data=Item(value="x"))
    signal.fire(outcome)

    seen = []
    signal.subscribe(seen.append)
    assert seen == [outcome]


def test_unsubscribe_stops_delivery():
    signal = Signal()
    seen = []
    unsubscribe = signal.subscribe(seen.append)
    unsubscribe()
    signal.fire(InProgress())
    assert seen == []


def test_raising_listener_does_not_block_others():
    signal = Signal()
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    signal.subscribe(broken)
    signal.subscribe(seen.append)
    signal.fire(InProgress())
    assert seen == [InProgress()]


def test_wait_times_out_without_terminal():
    signal = Signal()
    signal.fire(InProgress())
    assert signal.wait(timeout=0.05) is None
    assert not signal.done


def test_main_context_runs_on_one_thread_in_order():
    ctx = MainContext(name="unit-main")
    order = []
    threads = set()

    def record(n):
        order.append(n)
        threads.add(threading.current_thread().name)

    for n in range(20):
        ctx.dispatch(record, n)

    assert ctx.flush(timeout=5)
    ctx.shutdown()

    assert order == list(range(20))
    assert len(threads) == 1
    assert threads.pop().startswith("unit-main")


def test_main_context_survives_failing_callable():
    ctx = MainContext()
    ran = []

    def boom():
        raise ValueError("nope")

    ctx.dispatch(boom)
    ctx.dispatch(ran.append, 1)
    assert ctx.flush(timeout=5)
    ctx.shutdown()
    assert ran == [1]
