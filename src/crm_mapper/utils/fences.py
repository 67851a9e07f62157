"""Markdown code fence handling for LLM responses."""
from __future__ import annotations

import re

# Tag is matched case-sensitively; "```JSON" is not a recognized fence.
_FENCE_RE = re.compile(
    r"\A```(?:json|csv|plaintext)?(?![\w-])[ \t]*\n?(?P<body>.*?)\n?[ \t]*```\Z",
    re.DOTALL,
)


def strip_code_fence(content: str) -> str:
    """Remove one surrounding ```json / ```csv / ```plaintext fence.

    Text without a recognized fence is returned unchanged, so the function
    is idempotent on clean input.
    """
    match = _FENCE_RE.match(content.strip())
    if match is None:
        return content
    return match.group("body").strip()


def has_code_fence(content: str) -> bool:
    return _FENCE_RE.match(content.strip()) is not None
