import pytest

from milliframe.broker import (
    Broker,
    BrokerOptions,
    Message,
    PublishOptions,
    SubscribeOptions,
    Subscriber,
)


class _LoopSubscriber(Subscriber):
    def __init__(self, broker, topic, handler):
        self._broker = broker
        self._topic = topic
        self.handler = handler

    def topic(self):
        return self._topic

    def unsubscribe(self):
        self._broker.subs.remove(self)


class _LoopBroker(Broker):
    def __init__(self, options=None):
        super().__init__(options)
        self.connected = False
        self.subs = []

    def connect(self):
        self.connected = True

    def disconnect(self):
        self.connected = False

    def publish(self, topic, msg, options=None):
        for sub in list(self.subs):
            if sub.topic() == topic:
                sub.handler(msg)

    def subscribe(self, topic, handler, options=None):
        sub = _LoopSubscriber(self, topic, handler)
        self.subs.append(sub)
        return sub

    def __str__(self):
        return "loop"


def test_broker_is_abstract():
    with pytest.raises(TypeError):
        Broker()


def test_default_options_empty():
    options = BrokerOptions()
    assert options.addrs == []
    broker = _LoopBroker(options)
    assert Broker.address(broker) == ""


def test_address_joins_addrs():
    broker = _LoopBroker(BrokerOptions(addrs=["a:1", "b:2"]))
    assert Broker.address(broker) == "a:1,b:2"


def test_init_updates_options():
    password = "password"
    broker = _LoopBroker(BrokerOptions())
    Broker.init(broker, addrs=("h:9",), secure=True, username="user", password=password)
    assert broker.options.addrs == ["h:9"]
    assert broker.options.secure is True
    assert broker.options.username == "user"
    assert broker.options.password == password
    assert Broker.address(broker) == "h:9"


def test_init_rejects_unknown_option():
    broker = _LoopBroker(BrokerOptions())
    with pytest.raises(TypeError):
        Broker.init(broker, nonsense=1)


def test_subscribe_options_defaults():
    options = SubscribeOptions()
    assert options.auto_ack is True
    assert options.queue == ""
    assert options.context is None


def test_message_defaults_are_independent():
    first = Message()
    second = Message()
    first.header["k"] = "v"
    assert second.header == {}
    assert first.body == b""


def test_publish_reaches_subscriber_and_unsubscribe():
    broker = _LoopBroker()
    received = []
    sub = broker.subscribe("orders", received.append, SubscribeOptions(queue="q"))
    msg = Message(header={"id": "1"}, body=b"payload")
    broker.publish("orders", msg, PublishOptions())
    assert received == [msg]
    assert sub.topic() == "orders"
    sub.unsubscribe()
    broker.publish("orders", msg)
    assert received == [msg]
    assert str(broker) == "loop"