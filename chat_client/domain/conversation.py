from typing import Callable, Optional, Protocol, Sequence

from .models import Message


MessagesListener = Callable[[Sequence[Message]], None]


class KeyValueStorage(Protocol):
    """Durable string storage addressed by key (localStorage-like)."""

    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...

