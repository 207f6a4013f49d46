import threading

from screen_agent.scheduler import CoalesceScheduler


def test_reset_arms_a_daemon_timer(timers):
    fired = []
    scheduler = CoalesceScheduler(fired.append, timer_factory=timers)

    token = scheduler.reset(30.0)

    assert scheduler.pending
    assert timers.last.interval == 30.0
    assert timers.last.daemon
    assert timers.last.started
    timers.last.fire()
    assert fired == [token]


def test_reset_supersedes_previous_timer(timers):
    scheduler = CoalesceScheduler(lambda token: None, timer_factory=timers)

    first = scheduler.reset(5.0)
    second = scheduler.reset(5.0)

    assert timers.timers[0].cancelled
    assert not scheduler.is_current(first)
    assert scheduler.is_current(second)


def test_cancel_is_idempotent(timers):
    scheduler = CoalesceScheduler(lambda token: None, timer_factory=timers)
    token = scheduler.reset(5.0)

    scheduler.cancel()
    scheduler.cancel()

    assert not scheduler.pending
    assert not scheduler.is_current(token)
    assert timers.last.cancelled


def test_cancel_without_timer_is_a_no_op():
    scheduler = CoalesceScheduler(lambda token: None)

    scheduler.cancel()

    assert not scheduler.pending


def test_disarm_consumes_current_token(timers):
    scheduler = CoalesceScheduler(lambda token: None, timer_factory=timers)
    token = scheduler.reset(5.0)

    scheduler.disarm(token)

    assert not scheduler.pending


def test_real_timer_fires():
    done = threading.Event()
    scheduler = CoalesceScheduler(lambda token: done.set())

    scheduler.reset(0.01)

    assert done.wait(2.0)
