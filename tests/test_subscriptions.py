import logging

import pytest

from eegbackend.broker import BrokerNotStartedError, InboundMessage, MessageBroker
from eegbackend.ebms import EbmsMessage, EbMsMessageType, EdaProtocol, SubscribeMessage
from eegbackend.subscriptions import error_handler, get_subscriptions, init_error_subscriptions


class FakeStreamer:
    def publish(self, topic, payload):
        raise AssertionError("no publishing expected")

    def subscribe(self, topic, callback):
        raise AssertionError("no subscription expected")


def test_get_subscriptions_handles_error_protocol():
    subscriptions = get_subscriptions()
    assert len(subscriptions) == 1
    assert subscriptions[0].protocol == EdaProtocol.ERROR
    assert subscriptions[0].handler is error_handler


def test_error_handler_logs_error(caplog):
    message = SubscribeMessage(
        message_code=EbMsMessageType.EBMS_ERROR_MESSAGE,
        protocol=EdaProtocol.ERROR,
        tenant="TE100100",
        payload=EbmsMessage(error_message="broken"),
    )
    with caplog.at_level(logging.ERROR):
        error_handler(message)
    assert len(caplog.records) == 1
    assert caplog.records[0].levelno == logging.ERROR
    assert "Receive Error from EDA COMMUNICATION" in caplog.records[0].getMessage()
    assert "broken" in caplog.records[0].getMessage()


def test_init_error_subscriptions_routes_errors(caplog):
    broker = MessageBroker(FakeStreamer())
    init_error_subscriptions(broker)
    payload = EbmsMessage(message_code=EbMsMessageType.EBMS_ERROR_MESSAGE, error_message="boom")
    with caplog.at_level(logging.ERROR):
        broker.received(InboundMessage("TE100100", EdaProtocol.ERROR, payload.to_json().encode()))
    messages = [r.getMessage() for r in caplog.records]
    assert any("Receive Error from EDA COMMUNICATION" in m and "boom" in m for m in messages)


def test_init_error_subscriptions_without_broker():
    with pytest.raises(BrokerNotStartedError):
        init_error_subscriptions(None)