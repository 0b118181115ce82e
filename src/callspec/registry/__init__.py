"""Check registration and variant lookup."""

from callspec.registry.spec_registry import (
    IdentityLike,
    ShapeLike,
    SpecRegistry,
    coerce_identity,
    default_registry,
)

__all__ = [
    "IdentityLike",
    "ShapeLike",
    "SpecRegistry",
    "coerce_identity",
    "default_registry",
]
