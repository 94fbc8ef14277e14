"""HTML-to-text conversion for newsletter bodies.

Newsletters frequently arrive as HTML only. The extractor needs readable
text, so script/style/head content is skipped, tags are dropped, entities
are decoded and whitespace is collapsed.
"""

import re
from html.parser import HTMLParser
from io import StringIO


class _HTMLTextExtractor(HTMLParser):
    """Collects text nodes outside script/style/head content."""

    SKIP_TAGS = frozenset({"script", "style", "head", "meta", "link", "title"})

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self._buffer = StringIO()
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in self.SKIP_TAGS:
            self._skip_depth += 1
        else:
            self._buffer.write(" ")

    def handle_endtag(self, tag):
        if tag in self.SKIP_TAGS and self._skip_depth > 0:
            self._skip_depth -= 1
        else:
            self._buffer.write(" ")

    def handle_data(self, data):
        if self._skip_depth == 0:
            self._buffer.write(data)

    def get_text(self) -> str:
        return self._buffer.getvalue()


def html_to_text(html: str) -> str:
    """Extract readable text from an HTML email body."""
    parser = _HTMLTextExtractor()
    try:
        parser.feed(html)
        parser.close()
        text = parser.get_text()
    except Exception:
        # Fallback: strip tags with regex
        text = re.sub(r"<[^>]+>", " ", html)

    text = text.replace("\xa0", " ")
    text = re.sub(r"\s+", " ", text)
    return text.strip()
