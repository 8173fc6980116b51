from __future__ import annotations
import html
from dataclasses import dataclass, field
from email import policy
from email.message import EmailMessage, Message
from email.parser import BytesParser
from typing import Optional

from inboxsync.domain.errors import MessageParseError

@dataclass(frozen=True)
class ExtractedAttachment:
    filename: Optional[str]
    content_type: str
    content_bytes: bytes
    content_id: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content_bytes)

@dataclass(frozen=True)
class DecomposedMessage:
    headers: list[tuple[str, str]]
    text: Optional[str]
    html: Optional[str]
    attachments: list[ExtractedAttachment] = field(default_factory=list)

    def header(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return None

    @property
    def text_as_html(self) -> Optional[str]:
        if not self.text:
            return None
        paragraphs = [html.escape(p).replace("\n", "<br/>") for p in self.text.split("\n\n")]
        return "".join(f"<p>{p}</p>" for p in paragraphs if p.strip())

    @property
    def best_body(self) -> str:
        # Prefer html; fallback to text rendered as html, then raw text
        return self.html or self.text_as_html or self.text or ""

def _is_attachment(part: Message) -> bool:
    if part.is_multipart():
        return False
    disp = (part.get("Content-Disposition") or "").lower()
    # capture explicit attachments + common inline-with-filename cases
    return bool(part.get_filename()) or disp.startswith("attachment")

def extract_attachments(em: Message) -> list[ExtractedAttachment]:
    out: list[ExtractedAttachment] = []
    for part in em.walk():
        if not _is_attachment(part):
            continue

        payload = part.get_payload(decode=True) or b""
        content_id = part.get("Content-ID")
        out.append(
            ExtractedAttachment(
                filename=part.get_filename(),
                content_type=part.get_content_type(),
                content_bytes=payload,
                content_id=content_id.strip("<> ") if content_id else None,
            )
        )
    return out

def _first_body(em: EmailMessage, subtype: str) -> Optional[str]:
    for p in em.walk():
        if p.is_multipart() or _is_attachment(p):
            continue
        if p.get_content_type() == f"text/{subtype}":
            try:
                return p.get_content()
            except (LookupError, ValueError):
                # unknown charset: decode bytes leniently
                raw = p.get_payload(decode=True) or b""
                return raw.decode("utf-8", errors="replace")
    return None

def decompose(rfc822_bytes: bytes) -> DecomposedMessage:
    """Split raw RFC822 bytes into headers, text/html bodies and attachments."""
    if not rfc822_bytes or not rfc822_bytes.strip():
        raise MessageParseError("empty message source")

    try:
        em = BytesParser(policy=policy.default).parsebytes(rfc822_bytes)
        headers = [(k, str(v)) for k, v in em.items()]
        text = _first_body(em, "plain")
        body_html = _first_body(em, "html")
        attachments = extract_attachments(em)
    except Exception as e:
        raise MessageParseError(f"unparseable message: {e}") from e

    if not headers:
        raise MessageParseError("message has no headers")

    return DecomposedMessage(
        headers=headers,
        text=text.strip() if text else None,
        html=body_html,
        attachments=attachments,
    )
