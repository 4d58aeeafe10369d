"""Default subscriptions of the backend to the EDA communication service."""

from __future__ import annotations

import logging

from eegbackend.broker import BrokerNotStartedError, MessageBroker
from eegbackend.ebms import EdaProtocol, SubscribeMessage, Subscription

log = logging.getLogger(__name__)


def error_handler(message: SubscribeMessage) -> None:
    """Log an error reported by the EDA communication service."""
    log.error("Receive Error from EDA COMMUNICATION. Reason: %s", message)


def get_subscriptions() -> list[Subscription]:
    """The subscriptions every broker gets at start-up."""
    return [Subscription(EdaProtocol.ERROR, error_handler)]


def init_error_subscriptions(broker: MessageBroker | None) -> None:
    """Register the default subscriptions on ``broker``."""
    if broker is None:
        raise BrokerNotStartedError()
    broker.subscribe(*get_subscriptions())