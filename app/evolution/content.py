"""
File: app/evolution/content.py

Project: Evolution WhatsApp Console

Purpose:
Inbound message content as a closed set of variants, one per gateway
message kind, plus an explicit Unrecognized fallback.

parse_content() walks MESSAGE_KINDS in order and returns the first variant
whose field is present and usable. The order is the precedence: a payload
carrying both "conversation" and "imageMessage" is a Text.

Each variant renders the body stored in the messages table.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Union


@dataclass(frozen=True)
class Text:
    text: str

    def body(self) -> str:
        return self.text


@dataclass(frozen=True)
class ExtendedText:
    text: str

    def body(self) -> str:
        return self.text


@dataclass(frozen=True)
class Image:
    caption: str

    def body(self) -> str:
        return f"[Imagem] {self.caption}"


@dataclass(frozen=True)
class Video:
    caption: str

    def body(self) -> str:
        return f"[Vídeo] {self.caption}"


@dataclass(frozen=True)
class Audio:
    def body(self) -> str:
        return "[Áudio]"


@dataclass(frozen=True)
class Document:
    file_name: str = ""

    def body(self) -> str:
        return f"[Documento] {self.file_name}".rstrip()


@dataclass(frozen=True)
class Sticker:
    def body(self) -> str:
        return "[Sticker]"


@dataclass(frozen=True)
class ContactCard:
    display_name: str = ""

    def body(self) -> str:
        return f"[Contato] {self.display_name}".rstrip()


@dataclass(frozen=True)
class Location:
    def body(self) -> str:
        return "[Localização]"


@dataclass(frozen=True)
class Unrecognized:
    keys: Tuple[str, ...] = ()

    def body(self) -> str:
        return ""


MessageContent = Union[
    Text,
    ExtendedText,
    Image,
    Video,
    Audio,
    Document,
    Sticker,
    ContactCard,
    Location,
    Unrecognized,
]


def _str_field(node: Any, key: str) -> str:
    if isinstance(node, dict):
        value = node.get(key)
        if isinstance(value, str):
            return value
    return ""


def _text(node: Any) -> Optional[Text]:
    return Text(node) if isinstance(node, str) and node else None


def _extended_text(node: Any) -> Optional[ExtendedText]:
    text = _str_field(node, "text")
    return ExtendedText(text) if text else None


def _image(node: Any) -> Optional[Image]:
    caption = _str_field(node, "caption")
    return Image(caption) if caption else None


def _video(node: Any) -> Optional[Video]:
    caption = _str_field(node, "caption")
    return Video(caption) if caption else None


def _audio(node: Any) -> Optional[Audio]:
    return Audio() if isinstance(node, dict) else None


def _document(node: Any) -> Optional[Document]:
    return Document(_str_field(node, "fileName")) if isinstance(node, dict) else None


def _sticker(node: Any) -> Optional[Sticker]:
    return Sticker() if isinstance(node, dict) else None


def _contact(node: Any) -> Optional[ContactCard]:
    return ContactCard(_str_field(node, "displayName")) if isinstance(node, dict) else None


def _location(node: Any) -> Optional[Location]:
    return Location() if isinstance(node, dict) else None


# Ordered: first match wins.
MESSAGE_KINDS: Tuple[Tuple[str, Callable[[Any], Optional[MessageContent]]], ...] = (
    ("conversation", _text),
    ("extendedTextMessage", _extended_text),
    ("imageMessage", _image),
    ("videoMessage", _video),
    ("audioMessage", _audio),
    ("documentMessage", _document),
    ("stickerMessage", _sticker),
    ("contactMessage", _contact),
    ("locationMessage", _location),
)


def parse_content(message: Any) -> MessageContent:
    if not isinstance(message, dict):
        return Unrecognized()

    for key, build in MESSAGE_KINDS:
        if key not in message:
            continue
        content = build(message[key])
        if content is not None:
            return content

    return Unrecognized(keys=tuple(sorted(message.keys())))
