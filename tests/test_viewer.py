import threading

from slampose.viewer import ViewerControl


def test_new_control_is_finished_and_stopped():
    control = ViewerControl()
    assert control.is_finished() is True
    assert control.is_stopped() is True
    assert control.check_finish() is False


def test_request_stop_ignored_while_stopped():
    control = ViewerControl()
    control.request_stop()
    assert control.stop() is False


def test_stop_cycle_after_start():
    control = ViewerControl()
    control.start()
    assert control.is_stopped() is False
    assert control.is_finished() is False
    control.request_stop()
    assert control.stop() is True
    assert control.is_stopped() is True
    assert control.stop() is False
    control.release()
    assert control.is_stopped() is False


def test_finish_request_prevents_stop():
    control = ViewerControl()
    control.start()
    control.request_stop()
    control.request_finish()
    assert control.stop() is False
    assert control.is_stopped() is False


def test_set_finish_marks_finished():
    control = ViewerControl()
    control.start()
    control.set_finish()
    assert control.is_finished() is True


def test_run_until_finish_requested():
    control = ViewerControl()
    calls = []

    def step():
        calls.append(control.is_finished())
        if len(calls) == 3:
            control.request_finish()

    control.run(step)
    assert calls == [False, False, False]
    assert control.is_finished() is True


def test_run_pauses_until_released():
    control = ViewerControl()
    calls = []
    timer = threading.Timer(0.05, control.release)

    def step():
        calls.append(control.is_stopped())
        if len(calls) == 1:
            control.request_stop()
            timer.start()
        else:
            control.request_finish()

    control.run(step, poll_interval=0.001)
    timer.join()
    assert calls == [False, False]
    assert control.is_finished() is True