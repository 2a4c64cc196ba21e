"""Wire format of the /chat WebSocket endpoint.

Outbound frames carry a single query; inbound frames carry either one answer
fragment or one error. Anything else is malformed.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Union

from chat_client.domain.exceptions import FrameParseError


@dataclass(frozen=True)
class AnswerFrame:
    fragment: str


@dataclass(frozen=True)
class ErrorFrame:
    text: str


InboundFrame = Union[AnswerFrame, ErrorFrame]


def encode_query(text: str) -> str:
    return json.dumps({"query": text}, ensure_ascii=False)


def decode_frame(raw: str | bytes) -> InboundFrame:
    """Parse one inbound frame.

    An ``answer`` string wins over an ``error`` string when a payload
    carries both, matching the order the server fills them in.

    Raises:
        FrameParseError: the payload is not JSON or matches neither shape.
    """

    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise FrameParseError(code="INVALID_JSON", message=str(e), raw=text)
    if not isinstance(data, dict):
        raise FrameParseError(code="INVALID_FRAME", message="frame is not an object", raw=text)
    answer = data.get("answer")
    if isinstance(answer, str):
        return AnswerFrame(fragment=answer)
    error = data.get("error")
    if isinstance(error, str):
        return ErrorFrame(text=error)
    raise FrameParseError(code="INVALID_FRAME", message="frame has neither answer nor error", raw=text)
