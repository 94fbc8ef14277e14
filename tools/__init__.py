"""Text utilities shared by the agents and the reduce phase.

strip_code_fences / repair_json / loads_with_repair:
    Recovery of fenced, truncated or malformed model JSON output.

html_to_text:
    Readable text from HTML newsletter bodies.
"""

from tools.json_repair import loads_with_repair, repair_json, strip_code_fences
from tools.text import html_to_text

__all__ = [
    "loads_with_repair",
    "repair_json",
    "strip_code_fences",
    "html_to_text",
]
