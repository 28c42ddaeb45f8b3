import re

_TAG_RE = re.compile(r'<[^>]+>')
_CONTROL_RE = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')
_UNSAFE_CHARS_RE = re.compile(r'[<>"]')


def clean_text(text, max_length: int) -> str:
    """Strip control characters, trim, and cap length. Other characters are kept."""
    if text is None:
        return ""
    text = _CONTROL_RE.sub('', str(text))
    return text.strip()[:max_length].strip()


def sanitize_text(text, max_length: int) -> str:
    """Strip HTML tags, control characters and markup-unsafe characters, then cap length."""
    if text is None:
        return ""
    text = _TAG_RE.sub('', str(text))
    text = _UNSAFE_CHARS_RE.sub('', text)
    return clean_text(text, max_length)
