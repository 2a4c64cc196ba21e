"""对外 API 服务模块。

把配置、WebSocket transport、文件存储和事件循环组装成一个可用的
SessionController，供上层 UI 直接调用。
"""

import asyncio
from typing import Optional

from chat_client.config.settings import ChatSettings, settings as default_settings
from chat_client.domain.conversation import KeyValueStorage
from chat_client.infrastructure.logging.logger import logger
from chat_client.infrastructure.storage.json_store import JsonFileStorage
from chat_client.session.connection import ConnectionManager
from chat_client.session.controller import SessionController
from chat_client.session.store import ConversationStore
from chat_client.transport.base import Scheduler, Transport
from chat_client.transport.websocket_transport import WebSocketTransport


def create_session(
    settings: Optional[ChatSettings] = None,
    loop: Optional[asyncio.AbstractEventLoop] = None,
    transport: Optional[Transport] = None,
    scheduler: Optional[Scheduler] = None,
    storage: Optional[KeyValueStorage] = None,
) -> SessionController:
    """创建一个会话控制器（尚未连接）。

    Args:
        settings: 配置（可选，默认使用全局配置）
        loop: 事件循环（可选，默认取当前运行中的循环）
        transport: 自定义 transport（可选，默认 WebSocketTransport）
        scheduler: 重连定时器（可选，默认使用事件循环）
        storage: 持久化存储（可选，默认 JsonFileStorage）

    Returns:
        已加载历史记录的 SessionController；调用 start() 后开始连接。
    """
    cfg = settings or default_settings
    if transport is None or scheduler is None:
        loop = loop or asyncio.get_running_loop()
    store = ConversationStore(storage or JsonFileStorage(root=cfg.storage_root), key=cfg.history_key)
    connection = ConnectionManager(
        url=cfg.chat_url,
        transport=transport or WebSocketTransport(loop=loop),
        scheduler=scheduler or loop,
        max_attempts=cfg.max_retry_attempts,
        retry_delay=cfg.retry_delay,
    )
    logger.info(
        "Created chat session",
        extra={"extra": {"url": cfg.chat_url, "history": len(store), "max_retry_attempts": cfg.max_retry_attempts}},
    )
    return SessionController(connection=connection, store=store)
