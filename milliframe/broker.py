"""The interface for asynchronous message brokers."""

from __future__ import annotations

import dataclasses
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class Message:
    """A broker message: string headers and a byte body."""

    header: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


class Codec(Protocol):
    """Encodes and decodes message bodies."""

    def marshal(self, value: Any) -> bytes: ...

    def unmarshal(self, data: bytes) -> Any: ...


Handler = Callable[[Message], None]


@dataclass
class BrokerOptions:
    """Settings shared by every broker."""

    addrs: list[str] = field(default_factory=list)
    secure: bool = False
    username: str = ""
    password: str = ""
    codec: Codec | None = None
    context: Any = None
    tls_config: Any = None


@dataclass
class PublishOptions:
    """Settings for a single publish."""

    context: Any = None


@dataclass
class SubscribeOptions:
    """Settings for a subscription.

    With ``auto_ack`` set, a message is acknowledged when its handler
    returns without raising.
    """

    auto_ack: bool = True
    queue: str = ""
    context: Any = None


class Subscriber(ABC):
    """A live subscription returned by :meth:`Broker.subscribe`."""

    @abstractmethod
    def topic(self) -> str:
        """Return the subscribed topic."""

    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop receiving messages."""


class Broker(ABC):
    """Publishes and subscribes to topics on a message broker."""

    def __init__(self, options: BrokerOptions | None = None) -> None:
        self._options = options if options is not None else BrokerOptions()

    @property
    def options(self) -> BrokerOptions:
        return self._options

    def init(self, **kwargs: Any) -> None:
        """Update options by field name; unknown names raise TypeError."""
        if "addrs" in kwargs:
            kwargs["addrs"] = list(kwargs["addrs"])
        self._options = dataclasses.replace(self._options, **kwargs)

    def address(self) -> str:
        """Return the broker addresses, comma separated."""
        return ",".join(self._options.addrs)

    @abstractmethod
    def connect(self) -> None:
        """Connect to the broker."""

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the broker."""

    @abstractmethod
    def publish(self, topic: str, msg: Message, options: PublishOptions | None = None) -> None:
        """Publish ``msg`` to ``topic``."""

    @abstractmethod
    def subscribe(
        self, topic: str, handler: Handler, options: SubscribeOptions | None = None
    ) -> Subscriber:
        """Call ``handler`` for each message arriving on ``topic``."""

    @abstractmethod
    def __str__(self) -> str:
        """Return the broker's name."""