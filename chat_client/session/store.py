"""Ordered message sequence with synchronous snapshot persistence."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from chat_client.domain.conversation import KeyValueStorage, MessagesListener
from chat_client.domain.exceptions import MessageNotFoundError, StorageError, ValidationError
from chat_client.domain.models import Message
from chat_client.infrastructure.logging.logger import logger


class ConversationStore:
    """Holds the conversation and writes the full snapshot after every mutation.

    The snapshot is a JSON array of message records stored under one key.
    A snapshot that is missing or malformed in any way loads as an empty
    conversation; there is no partial recovery.
    """

    def __init__(self, storage: KeyValueStorage, key: str = "chatHistory"):
        self._storage = storage
        self._key = key
        self._messages: List[Message] = []
        self._index: Dict[str, int] = {}
        self._listeners: List[MessagesListener] = []
        self._load()

    @property
    def key(self) -> str:
        return self._key

    def append(self, message: Message) -> None:
        if message.id in self._index:
            raise ValidationError(code="DUPLICATE_MESSAGE_ID", message=message.id)
        self._index[message.id] = len(self._messages)
        self._messages.append(message)
        self._commit("append", message_id=message.id, sender=message.sender.value)

    def update_text(self, message_id: str, text: str) -> None:
        position = self._position(message_id)
        self._messages[position] = replace(self._messages[position], text=text)
        self._commit("update_text", message_id=message_id, length=len(text))

    def get(self, message_id: str) -> Message:
        return self._messages[self._position(message_id)]

    def all(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def reset(self) -> None:
        """Drop the whole conversation."""

        self._messages = []
        self._index = {}
        self._commit("reset")

    def subscribe(self, listener: MessagesListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _load(self) -> None:
        try:
            raw = self._storage.get_item(self._key)
        except StorageError as e:
            self._log(logging.WARNING, "Failed to read conversation snapshot", code=e.code, error=e.message)
            return
        if raw is None:
            return
        messages = _parse_snapshot(raw)
        if messages is None:
            self._log(logging.WARNING, "Discarded malformed conversation snapshot", size=len(raw))
            return
        self._messages = messages
        self._index = {m.id: i for i, m in enumerate(messages)}
        self._log(logging.INFO, "Loaded conversation snapshot", count=len(messages))

    def _commit(self, op: str, **fields: Any) -> None:
        payload = json.dumps([m.to_record() for m in self._messages], ensure_ascii=False)
        try:
            self._storage.set_item(self._key, payload)
        except StorageError as e:
            # the in-memory conversation stays authoritative
            self._log(logging.ERROR, "Failed to persist conversation", op=op, code=e.code, error=e.message)
        else:
            self._log(logging.DEBUG, "Persisted conversation", op=op, count=len(self._messages), **fields)
        snapshot = self.all()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Conversation listener failed", extra={"extra": {"key": self._key, "op": op}})

    def _position(self, message_id: str) -> int:
        position = self._index.get(message_id)
        if position is None:
            raise MessageNotFoundError(code="MESSAGE_NOT_FOUND", message=message_id)
        return position

    def _log(self, level: int, message: str, **fields: Any) -> None:
        payload: Dict[str, Any] = {"key": self._key}
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})


def _parse_snapshot(raw: str) -> Optional[List[Message]]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, list):
        return None
    messages: List[Message] = []
    seen: set[str] = set()
    for item in data:
        try:
            message = Message.from_record(item)
        except ValueError:
            return None
        if message.id in seen:
            return None
        seen.add(message.id)
        messages.append(message)
    return messages
