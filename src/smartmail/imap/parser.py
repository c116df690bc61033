# =============================================================================
# Message Parser
# =============================================================================
# Turns a raw RFC 822 source into the fields the local store keeps.
#
# Uses the standard library email package. HTML-only messages get a plain
# text body derived with inscriptis so list previews and search always have
# text to work with.
# =============================================================================

import email
import email.header
import email.utils
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.message import Message

from inscriptis import get_text
from inscriptis.css_profiles import CSS_PROFILES
from inscriptis.model.config import ParserConfig

from smartmail.core import Attachment

logger = logging.getLogger(__name__)

_HTML_CONFIG = ParserConfig(
    css=CSS_PROFILES["strict"],
    display_links=False,
    display_images=False,
    display_anchors=False,
)


@dataclass
class ParsedMessage:
    """
    Fields extracted from a raw message.

    Attributes:
        subject: Decoded subject, "(No Subject)" if missing.
        from_name: Sender display name (may be empty).
        from_address: Bare sender address (may be empty).
        from_text: Sender as shown in lists, "Unknown" if missing.
        date: Sent date in UTC, now if missing or unparsable.
        text: Plain text body.
        html: HTML body, or None.
        attachments: Extracted attachments.
    """
    subject: str = "(No Subject)"
    from_name: str = ""
    from_address: str = ""
    from_text: str = "Unknown"
    date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    text: str = ""
    html: str | None = None
    attachments: list[Attachment] = field(default_factory=list)


def parse_message(raw: bytes) -> ParsedMessage:
    """
    Parse a raw RFC 822 message.

    Args:
        raw: Message source as returned by FETCH BODY[].

    Returns:
        The parsed message.

    Raises:
        MessageParseError: If the source is empty or can't be parsed at all.
    """
    if not raw or not raw.strip():
        raise MessageParseError("Empty message source")

    try:
        msg = email.message_from_bytes(raw)
    except Exception as e:
        raise MessageParseError(f"Unparsable message source: {e}") from e

    if not msg.keys() and not msg.get_payload():
        raise MessageParseError("Message has neither headers nor body")

    parsed = ParsedMessage()

    subject = _decode_header(msg.get("Subject", ""))
    if subject.strip():
        parsed.subject = subject.strip()

    from_name, from_address = email.utils.parseaddr(msg.get("From", ""))
    parsed.from_name = _decode_header(from_name)
    parsed.from_address = from_address
    if parsed.from_name and from_address:
        parsed.from_text = f"{parsed.from_name} <{from_address}>"
    elif parsed.from_name or from_address:
        parsed.from_text = parsed.from_name or from_address

    parsed.date = _parse_date(msg.get("Date"))

    text, html, attachments = _parse_body(msg)
    if not text and html:
        text = html_to_text(html)
    parsed.text = text
    parsed.html = html or None
    parsed.attachments = attachments

    return parsed


def html_to_text(html: str) -> str:
    """Render an HTML body as plain text."""
    if not html or not html.strip():
        return ""
    return get_text(html, _HTML_CONFIG).strip()


def _decode_header(value: str | None) -> str:
    """Decode RFC 2047 encoded header value."""
    if not value:
        return ""
    try:
        decoded_parts = email.header.decode_header(str(value))
        result = ""
        for part, charset in decoded_parts:
            if isinstance(part, bytes):
                try:
                    result += part.decode(charset or "utf-8", errors="replace")
                except LookupError:
                    result += part.decode("utf-8", errors="replace")
            else:
                result += part
        return result
    except Exception:
        return str(value)


def _parse_date(value: str | None) -> datetime:
    """Parse a Date header to UTC, falling back to now."""
    if value:
        try:
            parsed = email.utils.parsedate_to_datetime(value)
            if parsed.tzinfo is None:
                return parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
        except (TypeError, ValueError):
            logger.debug(f"Unparsable Date header: {value!r}")
    return datetime.now(timezone.utc)


def _parse_body(msg: Message) -> tuple[str, str, list[Attachment]]:
    """
    Split a message into text body, HTML body and attachments.

    Returns:
        Tuple of (text, html, attachments).
    """
    text = ""
    html = ""
    attachments: list[Attachment] = []

    if not msg.is_multipart():
        content_type = msg.get_content_type()
        if content_type == "text/html":
            html = _decode_part(msg)
        elif content_type.startswith("text/") or not msg.get_payload():
            text = _decode_part(msg)
        else:
            attachment = _extract_attachment(msg)
            if attachment:
                attachments.append(attachment)
        return text, html, attachments

    for part in msg.walk():
        if part.is_multipart():
            continue

        content_type = part.get_content_type()
        disposition = str(part.get("Content-Disposition", "")).lower()

        if "attachment" in disposition or (part.get_filename() and "inline" not in disposition):
            attachment = _extract_attachment(part)
            if attachment:
                attachments.append(attachment)
        elif content_type == "text/plain" and not text:
            text = _decode_part(part)
        elif content_type == "text/html" and not html:
            html = _decode_part(part)
        elif not content_type.startswith("text/"):
            # Inline images and other embedded parts
            attachment = _extract_attachment(part)
            if attachment:
                attachments.append(attachment)

    return text, html, attachments


def _decode_part(part: Message) -> str:
    """Decode a message part to string."""
    payload = part.get_payload(decode=True)
    if isinstance(payload, bytes):
        charset = part.get_content_charset() or "utf-8"
        try:
            return payload.decode(charset, errors="replace")
        except (LookupError, UnicodeDecodeError):
            return payload.decode("utf-8", errors="replace")
    return str(payload) if payload else ""


def _extract_attachment(part: Message) -> Attachment | None:
    """Extract attachment from message part."""
    payload = part.get_payload(decode=True)
    if not isinstance(payload, bytes):
        return None

    filename = part.get_filename()
    if filename:
        filename = _decode_header(filename)
    else:
        content_type = part.get_content_type()
        ext = content_type.split("/")[-1] if "/" in content_type else "bin"
        filename = f"attachment.{ext}"

    return Attachment(
        filename=filename,
        content_type=part.get_content_type(),
        size=len(payload),
        data=payload,
    )


# =============================================================================
# Exceptions
# =============================================================================

class MessageParseError(Exception):
    """Raised when a message source can't be turned into an email."""
    pass
