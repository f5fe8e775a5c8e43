import re
import unicodedata
from uuid import uuid4


SLUG_PATTERN = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')
SLUG_MAX_LENGTH = 100
FALLBACK_SLUG = "category"


def generate_slug(text: str) -> str:
    """
    Build a URL-friendly slug from free text.

    Accents are folded to ASCII ("Café Crème" -> "cafe-creme"); anything that
    is not a letter, digit, space or hyphen is dropped. Text that leaves
    nothing behind (e.g. only punctuation) falls back to "category".
    """
    slug = unicodedata.normalize("NFKD", text)
    slug = "".join(ch for ch in slug if not unicodedata.combining(ch))
    slug = slug.lower().strip().replace("_", "-")

    # Remove special characters and multiple dashes
    slug = re.sub(r'[^a-z0-9\s-]', '', slug)
    slug = re.sub(r'\s+', '-', slug)
    slug = re.sub(r'-+', '-', slug).strip('-')

    slug = slug[:SLUG_MAX_LENGTH].rstrip('-')
    return slug or FALLBACK_SLUG


def with_random_suffix(slug: str, length: int = 6) -> str:
    suffix = uuid4().hex[:length]
    # keep the result inside the column limit
    base = slug[:SLUG_MAX_LENGTH - length - 1].rstrip('-')
    return f"{base}-{suffix}"


def is_valid_slug(slug: str) -> bool:
    return len(slug) <= SLUG_MAX_LENGTH and SLUG_PATTERN.match(slug) is not None
