"""
Heuristic detection of refusal messages returned instead of a translation.

The completion service sometimes answers a short or context-free fragment with
an apology or a request for more context. These lists are a tuning surface and
not an exhaustive classifier: a genuine translation containing one of the
phrases is flagged (and retried), and an unusual refusal slips through.
"""
import re
from typing import Iterable, List, Optional, Pattern, Sequence

# Indonesian (target language) refusal phrases
TARGET_LANGUAGE_REJECTION_KEYWORDS = [
    'tidak dapat menerjemahkan',
    'tidak bisa menerjemahkan',
    'maaf',
    'tidak lengkap',
    'tidak jelas',
    'berikan konteks',
    'kalimat yang lebih lengkap',
    'silakan berikan',
    'tidak memahami',
    'kurang jelas',
]

SOURCE_LANGUAGE_REJECTION_KEYWORDS = [
    "sorry, i can't assist",
    "i can't assist",
    'cannot assist',
    'unable to translate',
    "can't translate",
    'cannot translate',
    'i cannot',
    "i can't",
    'sorry, i cannot',
    "i'm unable to",
    'i am unable to',
    'not able to translate',
    'insufficient context',
    'need more context',
    'unclear text',
    'incomplete text',
    'please provide',
    'as an ai',
]

DEFAULT_REJECTION_KEYWORDS = TARGET_LANGUAGE_REJECTION_KEYWORDS + SOURCE_LANGUAGE_REJECTION_KEYWORDS

DEFAULT_REJECTION_PATTERNS = [
    r"\bsorry\b.*\bbut\b",
    r"\bonly\b.*\bassist\b",
    r"\bcould you (?:please )?(?:provide|clarify)\b",
    r"\b(?:more|additional) context\b",
    r"\bi(?:'m| am) (?:here|designed) to\b",
]


def compile_patterns(patterns: Iterable[str]) -> List[Pattern]:
    """Compile regular expressions case-insensitively, across line breaks."""
    return [re.compile(pattern, re.IGNORECASE | re.DOTALL) for pattern in patterns]


_DEFAULT_COMPILED_PATTERNS = compile_patterns(DEFAULT_REJECTION_PATTERNS)


def is_rejection(
        response_text: str,
        keywords: Optional[Sequence[str]] = None,
        patterns: Optional[Sequence[Pattern]] = None
) -> bool:
    """
    Decide whether a completion-service response is a refusal rather than a translation.

    Args:
        response_text: The text returned by the completion service.
        keywords: Lower-case refusal phrases; defaults to the built-in list.
        patterns: Compiled refusal patterns; defaults to the built-in list.

    Returns:
        bool: True if the response looks like a refusal or clarification request.
    """
    if not response_text:
        return False
    keywords = DEFAULT_REJECTION_KEYWORDS if keywords is None else keywords
    patterns = _DEFAULT_COMPILED_PATTERNS if patterns is None else patterns

    lower_text = response_text.lower()
    if any(keyword in lower_text for keyword in keywords):
        return True
    return any(pattern.search(lower_text) for pattern in patterns)


class RejectionClassifier:
    """A configured pair of keyword and pattern lists."""

    def __init__(self, extra_keywords: Iterable[str] = (), extra_patterns: Iterable[str] = ()):
        self.keywords = list(dict.fromkeys(
            DEFAULT_REJECTION_KEYWORDS + [keyword.lower() for keyword in extra_keywords if keyword]
        ))
        self.patterns = _DEFAULT_COMPILED_PATTERNS + compile_patterns(p for p in extra_patterns if p)

    def __call__(self, response_text: str) -> bool:
        return is_rejection(response_text, self.keywords, self.patterns)
