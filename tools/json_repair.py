"""Best-effort recovery of broken JSON emitted by a generative model.

Synthesis output is expected to be a single JSON object, but generation
length limits regularly cut it off mid-array or mid-object. The repair here
is a structural heuristic rather than a parser:

    1. Find the last '}' in the text
    2. Count unmatched '{' / '[' from the start through that position
    3. Cut the text after that '}' and append the missing ']' then '}'

When the text contains no '}' at all (the model was cut off before any
object closed), trailing commas and whitespace are stripped and the whole
text is balanced the same way.

Characters inside string literals are counted too. A brace inside a string
can therefore produce a wrong closing sequence; the caller re-parses the
result and falls back to a placeholder when that happens.
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_OPENING_FENCE = re.compile(r"^```[A-Za-z]*[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\n?```$")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence, if present.

    A truncated response may have lost its closing fence, so the two ends
    are handled independently.
    """
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    stripped = _OPENING_FENCE.sub("", stripped, count=1)
    stripped = _CLOSING_FENCE.sub("", stripped.rstrip(), count=1)
    return stripped.strip()


def repair_json(text: str) -> str:
    """Close unbalanced brackets/braces after the last complete object.

    Args:
        text: Raw (possibly truncated) JSON text

    Returns:
        Repaired text. Not guaranteed to parse; callers must re-check.
    """
    last_brace = text.rfind("}")
    if last_brace != -1:
        head = text[: last_brace + 1]
    else:
        head = text.rstrip().rstrip(",").rstrip()

    open_braces = 0
    open_brackets = 0
    for ch in head:
        if ch == "{":
            open_braces += 1
        elif ch == "}":
            open_braces -= 1
        elif ch == "[":
            open_brackets += 1
        elif ch == "]":
            open_brackets -= 1

    return head + "]" * max(0, open_brackets) + "}" * max(0, open_braces)


def loads_with_repair(text: str) -> tuple[Any, str]:
    """Parse JSON, attempting structural repair on failure.

    Returns:
        Tuple of (parsed value, how) where how is 'direct' or 'repaired'

    Raises:
        json.JSONDecodeError: If the repaired text still does not parse
        RecursionError: If the repaired text nests deeper than the decoder allows
    """
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned), "direct"
    except (json.JSONDecodeError, RecursionError):
        logger.warning("Initial JSON parse failed, attempting repair | chars=%d preview=%r",
                       len(cleaned), cleaned[:200])

    repaired = repair_json(cleaned)
    value = json.loads(repaired)
    logger.info("JSON repair successful | original_chars=%d repaired_chars=%d",
                len(cleaned), len(repaired))
    return value, "repaired"
