from collections.abc import Awaitable, Callable

from slugify import slugify as _slugify

MAX_SLUG_LENGTH = 80


def slugify(title: str) -> str:
    """Deterministic URL-safe slug: transliterated, lowercased, hyphen separated."""
    return _slugify(title, max_length=MAX_SLUG_LENGTH) or "advert"


async def unique_slug(title: str, exists: Callable[[str], Awaitable[bool]]) -> str:
    base_slug = slugify(title)
    slug = base_slug
    counter = 2
    while await exists(slug):
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug
