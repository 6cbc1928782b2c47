"""Input format checks shared by the engine and the API layer."""

import re
import unicodedata

from carguessr.errors import InvalidEntry, InvalidInput

SESSION_ID_RE = re.compile(r'^[A-Za-z0-9_-]{16,32}$')
LISTING_ID_RE = re.compile(r'^[A-Za-z0-9_-]{1,100}$')
CHALLENGE_CODE_RE = re.compile(r'^[A-Z0-9]{6}$')
_MARKUP_RE = re.compile(r'[<>"\'&`\\]')
_WHITESPACE_RE = re.compile(r'\s+')

CHALLENGE_TITLE_MAX = 100


def validate_session_id(session_id) -> str:
    if not isinstance(session_id, str) or not SESSION_ID_RE.match(session_id):
        raise InvalidInput("Invalid session ID format")
    return session_id


def validate_listing_id(listing_id) -> str:
    if not isinstance(listing_id, str) or not LISTING_ID_RE.match(listing_id):
        raise InvalidInput("Invalid listing ID format")
    return listing_id


def normalize_challenge_code(code) -> str:
    code = (code or '').strip().upper() if isinstance(code, str) else ''
    if not CHALLENGE_CODE_RE.match(code):
        raise InvalidInput("Challenge code must be 6 letters or numbers")
    return code


def _strip_unsafe(value: str) -> str:
    value = ''.join(ch for ch in value if not unicodedata.category(ch).startswith('C'))
    value = _MARKUP_RE.sub('', value)
    return _WHITESPACE_RE.sub(' ', value).strip()


def sanitize_name(name, max_length: int = 20) -> str:
    """Player name as it will be stored: control and markup characters removed."""
    if not isinstance(name, str):
        raise InvalidEntry("Name is required")
    cleaned = _strip_unsafe(name)
    if not cleaned:
        raise InvalidEntry("Name is required")
    if len(cleaned) > max_length:
        raise InvalidEntry(f"Name must be between 1 and {max_length} characters")
    return cleaned


def sanitize_challenge_title(title) -> str:
    if not isinstance(title, str):
        raise InvalidInput("Challenge title is required")
    cleaned = _strip_unsafe(title)
    if not cleaned or len(cleaned) > CHALLENGE_TITLE_MAX:
        raise InvalidInput(f"Challenge title must be between 1 and {CHALLENGE_TITLE_MAX} characters")
    return cleaned
