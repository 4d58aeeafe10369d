"""MQTT transport for EBMS messages and routing of inbound messages to handlers."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

from eegbackend.ebms import EbmsMessage, EdaProtocol, SubscribeMessage, Subscription

try:
    from paho.mqtt.enums import CallbackAPIVersion
except ImportError:
    CallbackAPIVersion = None

log = logging.getLogger(__name__)

REQUEST_TOPIC = "eda/request"
RESPONSE_TOPIC = "eda/response/+/protocol/#"

_STOP = object()
_TLS_SCHEMES = {"ssl", "tls", "mqtts"}


class BrokerNotStartedError(RuntimeError):
    """Raised when a message is handed to a broker that is not listening."""

    def __init__(self, message: str = "Broker not running") -> None:
        super().__init__(message)


def topic_tenant(topic: str) -> str:
    """The tenant part of a response topic, or the whole topic if it is too short."""
    parts = topic.split("/")
    return parts[2] if len(parts) > 4 else topic


def topic_type_info(topic: str) -> tuple[str, str]:
    """The tenant and protocol parts of a response topic."""
    parts = topic.split("/")
    if len(parts) > 4:
        return parts[2], parts[4]
    return topic, ""


def _protocol(value: str) -> EdaProtocol | str:
    try:
        return EdaProtocol(value)
    except ValueError:
        return value


@dataclass
class InboundMessage:
    """Raw payload received for a tenant on a protocol topic."""

    tenant: str
    protocol: EdaProtocol | str
    message: bytes


def _new_client(client_id: str) -> mqtt.Client:
    if CallbackAPIVersion is not None:
        return mqtt.Client(CallbackAPIVersion.VERSION2, client_id=client_id)
    return mqtt.Client(client_id=client_id)


class MqttStreamer:
    """A connected MQTT client with automatic reconnection."""

    def __init__(self, host: str, client_id: str) -> None:
        log.info("Use MQTT broker with address %s and Id %s", host, client_id)
        address = host if "://" in host else f"tcp://{host}"
        parts = urlsplit(address)
        secure = parts.scheme.lower() in _TLS_SCHEMES
        hostname = parts.hostname or "localhost"
        port = parts.port or (8883 if secure else 1883)

        client = _new_client(client_id)
        if secure:
            client.tls_set()
        client.reconnect_delay_set(min_delay=1, max_delay=30)
        client.on_connect = lambda *_args: log.info("MQTT connection established")
        client.on_disconnect = lambda *_args: log.info("connection lost")
        client.connect(hostname, port, keepalive=10)
        client.loop_start()
        self._client = client

    def publish(self, topic: str, payload: bytes) -> None:
        """Publish with at-least-once delivery and wait until it went out."""
        info = self._client.publish(topic, payload, qos=1)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise ConnectionError(f"MQTT publish to {topic} failed: {mqtt.error_string(info.rc)}")
        info.wait_for_publish()

    def subscribe(self, topic: str, callback: Callable[[str, bytes], Any]) -> None:
        """Deliver every message on ``topic`` to ``callback(topic, payload)``."""

        def on_message(_client: Any, _userdata: Any, message: Any) -> None:
            callback(message.topic, message.payload)

        self._client.message_callback_add(topic, on_message)
        result, _mid = self._client.subscribe(topic, qos=0)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise ConnectionError(f"MQTT subscribe to {topic} failed: {mqtt.error_string(result)}")


class MessageBroker:
    """Routes inbound EBMS messages to protocol handlers and publishes outbound ones.

    ``listen`` runs the loop that serialises both directions; it blocks
    until ``stop`` is called.
    """

    def __init__(self, streamer: Any) -> None:
        self._streamer = streamer
        self._handlers: dict[Any, Callable[[SubscribeMessage], None]] = {}
        self._queue: queue.Queue[Any] = queue.Queue()
        self._started = threading.Event()

    def subscribe(self, *args: Subscription) -> None:
        """Register handlers; a later handler for a protocol replaces the earlier one."""
        for subscription in args:
            self._handlers[subscription.protocol] = subscription.handler

    def unsubscribe(self, *args: Subscription) -> None:
        """Remove the handlers registered for the subscriptions' protocols."""
        for subscription in args:
            self._handlers.pop(subscription.protocol, None)

    def send_message(self, message: EbmsMessage) -> None:
        """Publish a message on the request topic right away."""
        log.info("Send Message to MQTT: %s", message.message_code)
        self._streamer.publish(REQUEST_TOPIC, message.to_json().encode("utf-8"))

    def send_ebms_message(self, message: EbmsMessage) -> None:
        """Queue a message for publishing by the listening loop."""
        if not self._started.is_set():
            raise BrokerNotStartedError()
        self._queue.put(("out", message))

    def received(self, inbound: InboundMessage) -> None:
        """Decode an inbound payload and pass it to the handler of its protocol."""
        try:
            message = EbmsMessage.from_json(inbound.message)
        except ValueError as exc:
            log.error("Error from MQTT: (%s) %s - %s", inbound.tenant, inbound.protocol, exc)
            return
        handler = self._handlers.get(inbound.protocol)
        if handler is not None:
            handler(
                SubscribeMessage(
                    message_code=message.message_code,
                    protocol=inbound.protocol,
                    tenant=inbound.tenant,
                    payload=message,
                )
            )

    def on_mqtt_message(self, topic: str, payload: bytes) -> None:
        """Queue a message arriving on a response topic."""
        log.info("Message from MQTT: %s [%s]", topic_tenant(topic), topic)
        tenant, protocol = topic_type_info(topic)
        self._queue.put(
            ("in", InboundMessage(tenant.upper(), _protocol(protocol.upper()), bytes(payload)))
        )

    def listen(self) -> None:
        """Subscribe to the response topics and process both directions until stopped."""
        self._started.set()
        try:
            self._streamer.subscribe(RESPONSE_TOPIC, self.on_mqtt_message)
            while True:
                item = self._queue.get()
                if item is _STOP:
                    break
                direction, content = item
                try:
                    if direction == "in":
                        log.info("Message on topic: %s", content.protocol)
                        self.received(content)
                    else:
                        self.send_message(content)
                except Exception:
                    log.exception("MQTT message handling failed")
        finally:
            self._started.clear()

    def stop(self) -> None:
        """End the listening loop once the queued messages are handled."""
        self._queue.put(_STOP)