import re
import secrets
from urllib.parse import urlparse

# No 0, O, I or l: codes get read aloud and typed by hand.
ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
CODE_LENGTH = 7

MIN_CODE_LENGTH = 3
MAX_CODE_LENGTH = 7
CODE_RE = re.compile(r"[A-Za-z0-9_-]+")


def generate_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def normalize_code(value: str | None) -> str:
    return (value or "").strip()


def is_valid_short_code(value) -> bool:
    if not isinstance(value, str):
        return False
    code = value.strip()
    if not MIN_CODE_LENGTH <= len(code) <= MAX_CODE_LENGTH:
        return False
    return CODE_RE.fullmatch(code) is not None


def is_valid_url(value) -> bool:
    """Purely syntactic check: absolute http(s) URL with a host."""
    if not isinstance(value, str) or not value:
        return False
    try:
        parsed = urlparse(value)
        # .port raises on garbage like "http://x.com:abc"
        parsed.port
    except ValueError:
        return False
    if any(c.isspace() for c in parsed.netloc):
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)
