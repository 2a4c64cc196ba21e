"""Transport 集成层。

- base: Transport / TransportHandle / TransportListener / Scheduler 协议。
- websocket_transport: 基于 websockets 库的实现。
"""

from chat_client.transport.base import Scheduler, Transport, TransportHandle, TransportListener
from chat_client.transport.websocket_transport import WebSocketTransport

__all__ = ["Scheduler", "Transport", "TransportHandle", "TransportListener", "WebSocketTransport"]
