"""
Text normalization applied before translation.

Removes decorative symbols (emoji and similar glyphs) and trailing
signature lines that would otherwise be translated along with the message.
"""

import re
import unicodedata


# Unicode "symbol, other" and "symbol, modifier"
DECORATIVE_CATEGORIES = frozenset({"So", "Sk"})

BULLET_CHARACTERS = "•✦★☆◆◇■□●○"

TRADEMARK = "™"

# Ordered sign-off patterns checked against the last line, first match wins
SIGNATURE_PATTERNS = (
    re.compile(r"^-\s"),                              # "- John"
    re.compile(r"^[—–]\s"),                           # "— John", "– John"
    re.compile(r"^[~*]\s"),                           # "~ John", "* John"
    re.compile(rf"^[{re.escape(BULLET_CHARACTERS)}]\s"),
    re.compile(r"^[^\W_]+:?\s"),                      # "John: ..." or "John ..."
)

NON_LETTER_RATIO_THRESHOLD = 0.5


def is_decorative(char: str) -> bool:
    """Check whether a character is a decorative symbol glyph."""
    return unicodedata.category(char) in DECORATIVE_CATEGORIES


def remove_emojis(text: str) -> str:
    """Remove every decorative symbol, keeping letters and punctuation."""
    return "".join(char for char in text if not is_decorative(char))


def _non_letter_ratio(line: str) -> float:
    if not line:
        return 0.0
    non_letters = sum(1 for char in line if not char.isalpha())
    return non_letters / len(line)


def looks_like_signature(line: str) -> bool:
    """
    Decide whether a single (stripped) line is a sign-off.

    Pattern heuristics are checked first; the non-letter ratio is only a
    fallback when none of them matched.
    """
    if not line:
        return False

    if any(pattern.search(line) for pattern in SIGNATURE_PATTERNS):
        return True

    if is_decorative(line[0]) or is_decorative(line[-1]):
        return True

    if line.endswith(TRADEMARK):
        return True

    return _non_letter_ratio(line) > NON_LETTER_RATIO_THRESHOLD


def remove_signature(text: str) -> str:
    """
    Drop the last line of a multi-line text if it looks like a signature.

    Single-line texts and texts whose last line is not a signature are
    returned unchanged.
    """
    lines = text.strip().split("\n")
    if len(lines) <= 1:
        return text

    if looks_like_signature(lines[-1].strip()):
        return "\n".join(lines[:-1]).strip()

    return text


def normalize_text(text: str, strip_signatures: bool = True) -> str:
    """
    Normalize an inbound message for translation.

    Emoji are removed first; signature stripping then runs on the result
    and repeats until the last line is no longer a signature, so that
    normalizing an already-normalized text changes nothing.

    Args:
        text: Raw message body
        strip_signatures: Whether to apply the signature heuristics

    Returns:
        Normalized text
    """
    normalized = remove_emojis(text)
    if not strip_signatures:
        return normalized

    while True:
        stripped = remove_signature(normalized)
        if stripped == normalized:
            return normalized
        normalized = stripped
