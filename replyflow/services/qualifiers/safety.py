"""Post-generation safety filter for customer-facing replies."""

import re

# Absolute promises and claims of privileged access never reach a customer.
DENYLISTED_PHRASES = [
    "approval guaranteed",
    "guaranteed",
    "100%",
    "inside contact",
    "government connection",
    "no risk",
]

_DENYLIST_RE = re.compile(
    "|".join(
        rf"(?<!\w){re.escape(phrase)}(?!\w)" if phrase[0].isalnum() and phrase[-1].isalnum()
        else re.escape(phrase)
        for phrase in sorted(DENYLISTED_PHRASES, key=len, reverse=True)
    ),
    re.IGNORECASE,
)
_SENTENCE_RE = re.compile(r"[^.!?\n]*[.!?]+|[^.!?\n]+")


def strip_denylisted(text: str) -> str:
    """Remove denylisted phrases and tidy the whitespace left behind."""
    cleaned = _DENYLIST_RE.sub("", text)
    cleaned = re.sub(r"[ \t]{2,}", " ", cleaned)
    cleaned = re.sub(r" +([.,!?])", r"\1", cleaned)
    return "\n".join(line.strip() for line in cleaned.splitlines()).strip()


def limit_to_one_question(text: str) -> str:
    """Keep the first question; drop any further question sentences."""
    lines_out = []
    asked = False
    for line in text.splitlines():
        kept = []
        for sentence in _SENTENCE_RE.findall(line):
            if "?" in sentence:
                if asked:
                    continue
                asked = True
            kept.append(sentence.strip())
        lines_out.append(" ".join(s for s in kept if s))
    return "\n".join(lines_out).strip()


def apply_reply_safety(text: str) -> str:
    return limit_to_one_question(strip_denylisted(text))


def contains_denylisted(text: str) -> bool:
    return _DENYLIST_RE.search(text) is not None
