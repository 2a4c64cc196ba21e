"""Reassembles streamed answer fragments into single bot messages."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from chat_client.domain.exceptions import FrameParseError
from chat_client.domain.frames import AnswerFrame, ErrorFrame, decode_frame
from chat_client.domain.models import ErrorKind, Message, Sender, TurnContext, new_message_id
from chat_client.infrastructure.logging.logger import logger
from chat_client.session.store import ConversationStore


class StreamAccumulator:
    """Applies inbound frames to the conversation, one frame at a time.

    The bot message being streamed is tracked through
    ``TurnContext.active_message_id``, shared with the session controller.
    Frames must be fed in transport delivery order; fragments are
    concatenated in exactly that order.
    """

    def __init__(
        self,
        store: ConversationStore,
        turn: TurnContext,
        on_activity: Optional[Callable[[], None]] = None,
    ):
        self._store = store
        self._turn = turn
        self._on_activity = on_activity

    @property
    def active_message_id(self) -> Optional[str]:
        return self._turn.active_message_id

    def begin_turn(self) -> Message:
        """Start a new turn with an empty bot placeholder.

        Any turn still streaming is finalized first.
        """

        self.end_turn()
        placeholder = Message(id=new_message_id(), sender=Sender.BOT, text="")
        self._store.append(placeholder)
        self._turn.active_message_id = placeholder.id
        return placeholder

    def end_turn(self) -> None:
        self._turn.active_message_id = None

    def consume(self, raw: str) -> None:
        """Apply one inbound frame. Response activity is signalled even if applying it fails."""

        try:
            self._apply(raw)
        finally:
            if self._on_activity is not None:
                self._on_activity()

    def _apply(self, raw: str) -> None:
        try:
            frame = decode_frame(raw)
        except FrameParseError as e:
            self._log(logging.WARNING, "Malformed inbound frame", code=e.code, error=e.message)
            self._append_error(e.raw, ErrorKind.PARSE)
            return
        if isinstance(frame, AnswerFrame):
            self._append_fragment(frame.fragment)
        elif isinstance(frame, ErrorFrame):
            self._log(logging.INFO, "Server reported error", error=frame.text)
            self.end_turn()
            self._append_error(frame.text, ErrorKind.APPLICATION)

    def _append_fragment(self, fragment: str) -> None:
        message_id = self._turn.active_message_id
        if message_id is None:
            message = Message(id=new_message_id(), sender=Sender.BOT, text="")
            self._store.append(message)
            self._turn.active_message_id = message.id
            message_id = message.id
            self._log(logging.INFO, "Started bot message without placeholder", message_id=message_id)
        current = self._store.get(message_id)
        self._store.update_text(message_id, current.text + fragment)

    def _append_error(self, text: str, kind: ErrorKind) -> None:
        self._store.append(Message(id=new_message_id(), sender=Sender.BOT, text=text, error=kind))

    @staticmethod
    def _log(level: int, message: str, **fields: Any) -> None:
        payload: Dict[str, Any] = dict(fields)
        logger.log(level, message, extra={"extra": payload})
