import re
import secrets
import unicodedata

CANCELLATION_TOKEN_BYTES = 32
SLUG_SUFFIX_RANGE = 10000
DEFAULT_SLUG = "registro"


def slugify(name: str) -> str:
    normalized = unicodedata.normalize("NFKD", name or "")
    ascii_only = normalized.encode("ascii", "ignore").decode("ascii")
    slug = ascii_only.strip().lower()
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug or DEFAULT_SLUG


def suffixed_slug(base_slug: str) -> str:
    return f"{base_slug}-{secrets.randbelow(SLUG_SUFFIX_RANGE)}"


def generate_cancellation_token() -> str:
    """256 random bits, hex encoded (64 chars)."""
    return secrets.token_hex(CANCELLATION_TOKEN_BYTES)
