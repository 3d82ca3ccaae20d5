"""Abstract connection protocol for broker clients."""

from abc import ABC, abstractmethod
from typing import Any

from broker.messaging.encoder import Framing, encode, encode_text


class ConnectionProtocol(ABC):
    """
    Abstract interface for a client connection.

    This abstraction allows message handling logic to be tested without real
    WebSocket connections. Replies use the framing of the client's last
    inbound frame (JSON text until the client sends a binary frame).
    """

    framing: Framing = Framing.TEXT

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Unique identifier for this connection."""
        ...

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the transport still accepts sends."""
        ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None:
        """
        Send a binary frame to the client.
        """
        ...

    @abstractmethod
    async def send_text(self, data: str) -> None:
        """
        Send a text frame to the client.
        """
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """
        Close the connection.
        """
        ...

    async def send_message(self, data: dict[str, Any]) -> None:
        """
        Send a message to the client in its current framing.
        """
        if self.framing is Framing.BINARY:
            await self.send_bytes(encode(data))
        else:
            await self.send_text(encode_text(data))
