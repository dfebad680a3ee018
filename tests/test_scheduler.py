import pytest

from dichoptic_rdk.scheduler import ManualClock, Scheduler, wait_seconds, wait_until


def test_manual_clock_only_moves_forward():
    clock = ManualClock(1.0)
    clock.advance(0.5)

    assert clock.now() == 1.5
    with pytest.raises(ValueError):
        clock.advance(-0.1)


def test_wait_seconds_resumes_once_elapsed():
    clock = ManualClock()
    task = wait_seconds(clock, 0.5)

    next(task)
    clock.advance(0.25)
    next(task)
    clock.advance(0.25)
    with pytest.raises(StopIteration):
        next(task)


def test_tasks_started_during_a_tick_run_on_the_next():
    scheduler = Scheduler()
    events = []

    def second():
        events.append("second")
        yield

    def first():
        events.append("first")
        scheduler.start(second())
        yield

    scheduler.start(first())
    scheduler.tick()
    assert events == ["first"]

    scheduler.tick()
    assert events == ["first", "second"]
    assert scheduler.active_count == 1

    scheduler.tick()
    assert scheduler.active_count == 0


def test_wait_until_and_cancel_all():
    scheduler = Scheduler()
    flag = []
    finished = []

    def waiter():
        yield from wait_until(lambda: bool(flag))
        finished.append(True)

    scheduler.start(waiter())
    scheduler.start(waiter())
    scheduler.tick()
    scheduler.tick()
    assert finished == []

    flag.append(True)
    scheduler.tick()
    assert finished == [True, True]

    scheduler.start(waiter())
    scheduler.cancel_all()
    assert scheduler.active_count == 0
