"""Inline button payloads.

Telegram hands back a raw `callback_data` string (max 64 bytes). It is
decoded exactly once, here, into one of the dataclasses below; the
bridge then dispatches on the type. Anything unrecognised decodes to
None and is answered with "unknown action" without touching state.

Wire format is `<prefix>:<arg>` (or a bare prefix for no-arg actions):

    reply:msg_5      -> ReplyTo("msg_5")
    info:msg_5       -> ContactInfo("msg_5")
    share:msg_5      -> ShareContact("msg_5")
    menu:status      -> Menu("status")
    contacts:2       -> ContactsPage(2)
    pick:628…@s.whatsapp.net -> PickContact(...)
    manual           -> ManualAddress()
    cancel           -> CancelAction()
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

logger = logging.getLogger("wabridge.callbacks")

MAX_CALLBACK_BYTES = 64

MENU_ACTIONS = ("status", "list", "send", "help", "contacts")


@dataclass(frozen=True)
class ReplyTo:
    correlation_id: str

    def to_data(self) -> str:
        return f"reply:{self.correlation_id}"


@dataclass(frozen=True)
class ContactInfo:
    correlation_id: str

    def to_data(self) -> str:
        return f"info:{self.correlation_id}"


@dataclass(frozen=True)
class ShareContact:
    correlation_id: str

    def to_data(self) -> str:
        return f"share:{self.correlation_id}"


@dataclass(frozen=True)
class Menu:
    action: str

    def to_data(self) -> str:
        return f"menu:{self.action}"


@dataclass(frozen=True)
class ContactsPage:
    page_index: int

    def to_data(self) -> str:
        return f"contacts:{self.page_index}"


@dataclass(frozen=True)
class PickContact:
    address: str

    def to_data(self) -> str:
        return f"pick:{self.address}"


@dataclass(frozen=True)
class ManualAddress:
    def to_data(self) -> str:
        return "manual"


@dataclass(frozen=True)
class CancelAction:
    def to_data(self) -> str:
        return "cancel"


Callback = Union[
    ReplyTo, ContactInfo, ShareContact, Menu,
    ContactsPage, PickContact, ManualAddress, CancelAction,
]

_ID_ACTIONS = {
    "reply": ReplyTo,
    "info": ContactInfo,
    "share": ShareContact,
}


def decode_callback(data: str) -> Optional[Callback]:
    """Parse raw callback data into a Callback, or None if unrecognised."""
    data = (data or "").strip()
    if not data:
        return None

    prefix, sep, arg = data.partition(":")

    if not sep:
        if prefix == "manual":
            return ManualAddress()
        if prefix == "cancel":
            return CancelAction()
        return None

    if not arg:
        return None

    if prefix in _ID_ACTIONS:
        return _ID_ACTIONS[prefix](arg)
    if prefix == "menu":
        return Menu(arg) if arg in MENU_ACTIONS else None
    if prefix == "contacts":
        if not arg.isdigit():
            return None
        return ContactsPage(int(arg))
    if prefix == "pick":
        return PickContact(arg)
    return None


def fits(callback: Callback) -> bool:
    """True if the encoded payload fits Telegram's callback_data limit."""
    return len(callback.to_data().encode("utf-8")) <= MAX_CALLBACK_BYTES
