"""
Content Extractor
Turns a Gmail message payload into plain text for code extraction.

Payload dicts are decoded once into tagged part types (plain text, HTML,
multipart, unsupported) and everything downstream works on those.
"""
import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from typing import List, Tuple, Union

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

NON_CONTENT_TAGS = ["script", "style", "meta", "link", "noscript"]

WHITESPACE = re.compile(r"\s+")


@dataclass
class PlainTextPart:
    text: str


@dataclass
class HtmlPart:
    html: str


@dataclass
class MultipartPart:
    mime_type: str
    parts: List["MessagePart"] = field(default_factory=list)


@dataclass
class UnsupportedPart:
    """Attachments, images and anything else without analyzable text"""
    mime_type: str


MessagePart = Union[PlainTextPart, HtmlPart, MultipartPart, UnsupportedPart]


def decode_body_data(data: str) -> str:
    """Decode Gmail's base64url body data. Bad data decodes to an empty string."""
    if not data:
        return ""
    try:
        padded = data + "=" * (-len(data) % 4)
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        logger.warning("Could not decode message body data (%d chars)", len(data))
        return ""


def decode_payload(payload: dict) -> MessagePart:
    """Decode a Gmail API `payload` (or nested part) dict"""
    payload = payload or {}
    mime_type = (payload.get("mimeType") or "").lower()
    children = payload.get("parts") or []

    if mime_type.startswith("multipart/") or children:
        return MultipartPart(
            mime_type=mime_type or "multipart/mixed",
            parts=[decode_payload(child) for child in children]
        )

    data = (payload.get("body") or {}).get("data")
    if mime_type == "text/html":
        return HtmlPart(html=decode_body_data(data))
    if mime_type == "text/plain" or (not mime_type and data):
        return PlainTextPart(text=decode_body_data(data))
    return UnsupportedPart(mime_type=mime_type)


def html_to_text(html: str) -> str:
    """
    Visible text of an HTML document with whitespace collapsed.
    Falls back to the raw HTML if parsing fails.
    """
    try:
        soup = BeautifulSoup(html, "html.parser")
        for element in soup.find_all(NON_CONTENT_TAGS):
            element.decompose()
        root = soup.body or soup
        return WHITESPACE.sub(" ", root.get_text(" ")).strip()
    except Exception as e:
        logger.warning("Error parsing HTML content, using raw HTML: %s", e)
        return html


def _collect(part: MessagePart, plain: List[str], html: List[str]):
    if isinstance(part, PlainTextPart):
        if part.text:
            plain.append(part.text)
    elif isinstance(part, HtmlPart):
        if part.html:
            html.append(part.html)
    elif isinstance(part, (MultipartPart, UnsupportedPart)):
        pass
    else:
        raise TypeError(f"Unknown message part type: {type(part).__name__}")


def collect_bodies(root: MessagePart) -> Tuple[str, str]:
    """
    Concatenated (plain, html) content of a message.

    Looks at the children of a multipart root and one level of nested
    children below them, or at the root itself for single-part messages.
    """
    plain: List[str] = []
    html: List[str] = []

    if isinstance(root, MultipartPart):
        for part in root.parts:
            _collect(part, plain, html)
            if isinstance(part, MultipartPart):
                for nested in part.parts:
                    _collect(nested, plain, html)
    else:
        _collect(root, plain, html)

    return "".join(plain), "".join(html)


def extract_text(root: MessagePart) -> str:
    """Plain text if the message has any, otherwise text extracted from HTML"""
    plain, html = collect_bodies(root)
    if plain:
        return plain
    if html:
        return html_to_text(html)
    return ""
