from checkin_hub.notifier import VisitorUpdateNotifier


def test_notify_calls_every_subscriber():
    notifier = VisitorUpdateNotifier()
    calls = []
    notifier.subscribe(lambda: calls.append("a"))
    notifier.subscribe(lambda: calls.append("b"))

    notifier.notify()

    assert sorted(calls) == ["a", "b"]


def test_unsubscribe_stops_delivery():
    notifier = VisitorUpdateNotifier()
    calls = []
    handle = notifier.subscribe(lambda: calls.append(1))

    assert notifier.unsubscribe(handle) is True
    assert notifier.unsubscribe(handle) is False
    notifier.notify()

    assert calls == []
    assert notifier.subscriber_count == 0


def test_failing_listener_does_not_stop_the_others():
    notifier = VisitorUpdateNotifier()
    calls = []

    def broken():
        raise RuntimeError("listener failed")

    notifier.subscribe(broken)
    notifier.subscribe(lambda: calls.append(1))

    notifier.notify()

    assert calls == [1]


def test_listener_may_unsubscribe_while_notified():
    notifier = VisitorUpdateNotifier()
    calls = []
    handles = []

    def once():
        calls.append(1)
        notifier.unsubscribe(handles[0])

    handles.append(notifier.subscribe(once))
    notifier.notify()
    notifier.notify()

    assert calls == [1]
