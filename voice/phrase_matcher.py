# voice/phrase_matcher.py
"""
Word-order phrase matching for voice commands.

A template is a sequence of literal words and at most one placeholder
(``[TEXTO]``). Transcript words are walked left to right; the template
cursor moves only when the current word matches, so filler words before,
between and after the required words are tolerated. The placeholder
consumes any single word, which means a template with a placeholder needs
at least one word of payload to match.
"""

import unicodedata
from typing import Dict, List, Optional, Tuple

PLACEHOLDER = "[TEXTO]"
PARAM_NAME = "text"


def strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize(text: str) -> str:
    """Lowercase, trim and drop diacritics."""
    return strip_diacritics((text or "").lower().strip())


def tokenize(text: str) -> List[str]:
    return (text or "").split()


def words_match(word: str, other: str) -> bool:
    return normalize(word) == normalize(other)


def _is_placeholder(token: str) -> bool:
    return token.upper() == PLACEHOLDER


def has_placeholder(template: str) -> bool:
    return any(_is_placeholder(tok) for tok in tokenize(template))


def _walk(words: List[str], template_words: List[str]) -> Tuple[int, Optional[int]]:
    """Return (template cursor, transcript index consumed by the placeholder)."""
    cursor = 0
    placeholder_at = None
    for index, word in enumerate(words):
        if cursor >= len(template_words):
            break
        expected = template_words[cursor]
        if _is_placeholder(expected):
            placeholder_at = index
            cursor += 1
        elif words_match(word, expected):
            cursor += 1
    return cursor, placeholder_at


def matches_phrase(transcript: str, template: str) -> bool:
    template_words = tokenize(template)
    if not template_words:
        return False
    cursor, _ = _walk(tokenize(transcript), template_words)
    return cursor == len(template_words)


def _find_last_run(words: List[str], needle: List[str], start: int) -> Optional[int]:
    """Index of the rightmost contiguous occurrence of needle in words[start:]."""
    for pos in range(len(words) - len(needle), start - 1, -1):
        if all(words_match(words[pos + k], needle[k]) for k in range(len(needle))):
            return pos
    return None


def extract_parameters(transcript: str, template: str) -> Dict[str, str]:
    """
    Pull the placeholder payload out of a matching transcript.

    The literal words before the marker, and everything spoken ahead of
    them, are dropped; so are the literal words after the marker. A
    template without a placeholder yields no parameters.
    """
    template_words = tokenize(template)
    marker = next((i for i, tok in enumerate(template_words) if _is_placeholder(tok)), None)
    if marker is None:
        return {}

    words = tokenize(transcript)
    _, start = _walk(words, template_words)
    if start is None:
        return {PARAM_NAME: ""}

    end = len(words)
    suffix = template_words[marker + 1:]
    if suffix:
        found = _find_last_run(words, suffix, start + 1)
        if found is not None:
            end = found
    return {PARAM_NAME: " ".join(words[start:end]).strip()}
