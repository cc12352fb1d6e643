"""Strip markdown code fences from AI output before it is saved as a file."""

from __future__ import annotations

import re

# ```, ```tsx, ```c++ ... on the first line
_START_FENCE = re.compile(r"\A```[\w.+#-]*[ \t]*\r?\n")
# ``` on the last line
_END_FENCE = re.compile(r"\r?\n```[ \t]*\Z")


def clean_ai_code_response(raw: str | None) -> str:
    """Remove a wrapping leading/trailing fence line and trim.

    e.g. "```tsx\\nconst a = 1;\\n```" -> "const a = 1;"

    Text without an outer fence is returned untouched. Stripping repeats
    until no outer fence is left, so the result is a fixed point.
    """
    if not raw:
        return ""
    cleaned = raw.strip()
    changed = False
    while True:
        stripped = _END_FENCE.sub("", _START_FENCE.sub("", cleaned, count=1), count=1).strip()
        if stripped == cleaned:
            break
        cleaned = stripped
        changed = True
    return cleaned if changed else raw
