"""Identity extraction for actor tracking."""

from .extractor import ActorIdentity, IdentityExtractor, extract_identity

__all__ = [
    "ActorIdentity",
    "IdentityExtractor",
    "extract_identity",
]
