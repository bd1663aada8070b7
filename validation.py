# validation.py
# Pure helpers that clean user input before it goes anywhere near the database.
import re

# Characters stripped from any free text we store
_UNSAFE_CHARS = re.compile(r"[<>'\"&]")
MAX_STRING_LENGTH = 255

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_INSTITUTIONAL_EMAIL_RE = re.compile(r"^[^\s@]+@graduacao\.uerj\.br$")
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def sanitize_string(value, max_length: int | None = MAX_STRING_LENGTH) -> str:
    """Trim, drop < > ' " & and cut to 255 chars. Never raises; non-strings become ''.

    Fields with their own length rule (comments, feedback text) pass max_length=None
    and check the length themselves.
    """
    if not isinstance(value, str):
        return ""
    cleaned = _UNSAFE_CHARS.sub("", value.strip())
    return cleaned if max_length is None else cleaned[:max_length]


def sanitize_email(value) -> str:
    """Return the trimmed, lowercased email, or '' if it doesn't look like local@domain.tld."""
    if not isinstance(value, str):
        return ""
    cleaned = value.strip().lower()
    return cleaned if _EMAIL_RE.match(cleaned) else ""


def validate_uuid(value) -> bool:
    """Strict canonical 8-4-4-4-12 hex form, any case."""
    return isinstance(value, str) and bool(_UUID_RE.match(value))


def validate_stars(value) -> bool:
    """Stars must be a real int between 1 and 5 (3.5, '3' and True are all rejected)."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return 1 <= value <= 5


def is_institutional_email(value) -> bool:
    """Only @graduacao.uerj.br addresses can sign in."""
    return isinstance(value, str) and bool(_INSTITUTIONAL_EMAIL_RE.match(value))
