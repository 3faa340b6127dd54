from __future__ import annotations

import re
from typing import Optional

INJECTION_PATTERNS = [
    r"ignore (all )?(the )?(previous|earlier|above) (instructions|prompts|rules|details)",
    r"disregard (all )?(prior|previous) (instructions|context)",
    r"you are now",
    r"new system (prompt|instruction)",
    r"overwrite your instructions",
    r"forget (the )?(rules|instructions|previous|item details)",
    r"reveal (your|the) (system )?(prompt|instructions)",
    r"developer message",
    r"system override",
    r"jailbreak",
    r"bypass (safety|guardrails|guidelines)",
]

URL_INJECTION_RE = re.compile(r"https?://[^\s]+", re.IGNORECASE)
PROMPT_WORDS_RE = re.compile(r"(prompt|instruction|system message)", re.IGNORECASE)
_COMPILED = [re.compile(pattern) for pattern in INJECTION_PATTERNS]


def detect_prompt_injection(text: str) -> Optional[str]:
    """Return the matched pattern if the input looks like a prompt-override attempt."""
    if not text:
        return None
    lowered = text.lower()
    for pattern in _COMPILED:
        if pattern.search(lowered):
            return pattern.pattern
    for url in URL_INJECTION_RE.findall(text):
        if PROMPT_WORDS_RE.search(url):
            return "url_prompt_pattern"
    return None
