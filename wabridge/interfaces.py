"""Channel-agnostic interfaces between the bridge and the two networks.

The bridge never imports telegram or wacli code directly. It talks to a
SourceClient (WhatsApp) and a ControlClient (Telegram) and exchanges the
plain dataclasses defined here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from .callbacks import Callback

CONNECTED = "CONNECTED"
DISCONNECTED = "DISCONNECTED"


@dataclass
class Media:
    mimetype: str
    data: bytes
    filename: Optional[str] = None

    @property
    def kind(self) -> str:
        """'photo', 'video', 'audio' or 'document' by MIME prefix."""
        mime = (self.mimetype or "").lower()
        if mime.startswith("image/"):
            return "photo"
        if mime.startswith("video/"):
            return "video"
        if mime.startswith("audio/"):
            return "audio"
        return "document"


async def _no_media() -> Optional[Media]:
    return None


@dataclass
class InboundMessage:
    address: str                    # chat JID (group JID for groups)
    is_group: bool
    chat_name: str = ""             # group subject, or contact name for DMs
    sender_name: str = ""           # push name of the person who wrote it
    body: str = ""
    has_media: bool = False
    from_me: bool = False
    phone: str = ""                 # phone digits when known (empty for groups and unmapped @lid chats)
    fetch_media: Callable[[], Awaitable[Optional[Media]]] = _no_media


@dataclass
class Contact:
    address: str
    name: str
    is_group: bool = False


@dataclass
class Button:
    label: str
    callback: Callback


@dataclass
class Attachment:
    filename: str
    data: bytes
    caption: str = ""


@dataclass
class Reply:
    """What the operator sees in response to an action.

    `alert` asks the control channel to show the text as a popup on the
    pressed button instead of a chat message (buttons only).
    """
    text: str = ""
    buttons: list[list[Button]] = field(default_factory=list)
    document: Optional[Attachment] = None
    alert: bool = False


class SourceClient(ABC):
    """The network inbound messages come from (WhatsApp)."""

    @abstractmethod
    async def send(self, address: str, text: str):
        """Send text to address. Raises SendFailure on any failure."""
        ...

    @abstractmethod
    async def list_contacts(self) -> list[Contact]:
        """Known chats, most recently active first."""
        ...

    @abstractmethod
    def connection_state(self) -> str:
        """CONNECTED or DISCONNECTED."""
        ...


class ControlClient(ABC):
    """The network the operator works from (Telegram)."""

    @abstractmethod
    async def notify(self, chat_id: int, text: str, buttons: Optional[list[list[Button]]] = None):
        """Send a message (HTML) to chat_id. Raises SendFailure on failure."""
        ...

    @abstractmethod
    async def send_media(
        self,
        chat_id: int,
        kind: str,
        data: bytes,
        caption: str,
        filename: Optional[str] = None,
    ):
        """Send photo/video/audio/document bytes to chat_id."""
        ...
