import re
import unicodedata

_DISALLOWED = re.compile(r"[^A-Za-z0-9 ]")


def sanitize(text: str | None, max_length: int) -> str:
    """Reduce free text to ASCII letters, digits and spaces, then truncate.

    Accented letters keep their base letter ("ã" -> "a"). Truncation is applied
    last, since stripping can shorten the string.
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    base = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _DISALLOWED.sub("", base)[:max(max_length, 0)]
