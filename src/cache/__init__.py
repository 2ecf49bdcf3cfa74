from .decorator import (
    PACKAGES_TAG,
    cached,
    invalidate_packages_cache,
    invalidate_tag,
)

__all__ = [
    "PACKAGES_TAG",
    "cached",
    "invalidate_packages_cache",
    "invalidate_tag",
]
