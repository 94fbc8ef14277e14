"""Document model for ingested newsletter emails.

A Document is one raw email as recorded by the ingestion layer. The pipeline
never mutates documents; it only reads their text to build insights.

Text Strategy:
    - Plain-text body is preferred when it has any content
    - Otherwise the HTML body is reduced to readable text
    - The snippet is computed locally and never depends on the extractor,
      so even a failed extraction carries a meaningful preview
"""

import re
from datetime import datetime

from pydantic import BaseModel, Field

from tools.text import html_to_text

SNIPPET_CHARS = 200

_HEADER_LINE = re.compile(r"^(From:|To:|Subject:|Date:).*$", re.IGNORECASE | re.MULTILINE)
_SIGNATURE_LINE = re.compile(r"^--.*$", re.MULTILINE)
_TRAILING_PARTIAL_WORD = re.compile(r"\s+\S*$")


class Document(BaseModel):
    """A newsletter email in the ingestion store.

    Attributes:
        id: Unique message identifier (ownership key for insights)
        publisher: Sender address, used as the publisher label
        publisher_name: Optional sender display name
        subject: Subject line
        sent_at: When the publisher sent the email (UTC)
        ingested_at: When the ingestion layer stored the email (UTC);
            the delta window is computed over this timestamp
        body_html: HTML body, if any
        body_text: Plain-text body, if any
    """

    id: str = Field(description="Unique message identifier")
    publisher: str = Field(description="Sender address")
    publisher_name: str | None = Field(default=None, description="Sender display name")
    subject: str = Field(default="", description="Subject line")
    sent_at: datetime = Field(description="Sent timestamp (UTC)")
    ingested_at: datetime = Field(description="Ingestion timestamp (UTC)")
    body_html: str | None = Field(default=None, description="HTML body")
    body_text: str | None = Field(default=None, description="Plain-text body")

    @property
    def text(self) -> str:
        """Readable body text, preferring the plain-text part."""
        if self.body_text and self.body_text.strip():
            return self.body_text
        if self.body_html:
            return html_to_text(self.body_html)
        return ""

    def snippet(self) -> str:
        """Representative preview: first 200 chars cut at a word boundary."""
        text = self.text
        if not text.strip():
            return f"[No content available] {self.subject}"

        cleaned = _HEADER_LINE.sub("", text)
        cleaned = _SIGNATURE_LINE.sub("", cleaned).strip()

        if len(cleaned) > SNIPPET_CHARS:
            snippet = _TRAILING_PARTIAL_WORD.sub("", cleaned[:SNIPPET_CHARS]) + "..."
        else:
            snippet = cleaned

        return snippet or f"[Content preview unavailable] {self.subject}"

    def truncated_text(self, max_chars: int) -> str:
        """Body text capped for the extractor prompt."""
        text = self.text
        if len(text) > max_chars:
            return text[:max_chars] + "\n\n[Content truncated...]"
        return text

    def __str__(self) -> str:
        return f"Document({self.id}, '{self.subject[:50]}')"
