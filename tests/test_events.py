from carelink.utils.events import EventBus


def test_publish_reaches_subscribers():
    bus = EventBus()
    got = []
    bus.subscribe("beds", got.append)
    bus.subscribe("beds", lambda m: got.append(("second", m)))
    bus.publish("beds", "b1")
    assert got == ["b1", ("second", "b1")]


def test_topics_are_isolated():
    bus = EventBus()
    got = []
    bus.subscribe("calls", got.append)
    bus.publish("beds", "b1")
    assert got == []


def test_unsubscribe():
    bus = EventBus()
    got = []
    unsubscribe = bus.subscribe("calls", got.append)
    assert bus.subscriber_count("calls") == 1
    unsubscribe()
    unsubscribe()
    bus.publish("calls", "c1")
    assert got == []
    assert bus.subscriber_count("calls") == 0


def test_listener_may_unsubscribe_while_handling():
    bus = EventBus()
    got = []

    def once(message):
        got.append(message)
        unsubscribe()

    unsubscribe = bus.subscribe("calls", once)
    bus.publish("calls", 1)
    bus.publish("calls", 2)
    assert got == [1]


def test_failing_listener_does_not_stop_delivery(caplog):
    bus = EventBus()
    got = []

    def broken(message):
        raise RuntimeError("listener crashed")

    bus.subscribe("calls", broken)
    bus.subscribe("calls", got.append)

    bus.publish("calls", "c1")

    assert got == ["c1"]
    assert "listener crashed" in caplog.text
