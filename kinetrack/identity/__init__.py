"""Identity resolution: registered gallery and hybrid re-recognition."""

from kinetrack.identity.gallery import GalleryConfig, IdentityGallery, MatchResult
from kinetrack.identity.resolver import IdentityBinding, IdentityResolver, RecognitionPolicy

__all__ = [
    "GalleryConfig",
    "IdentityGallery",
    "MatchResult",
    "IdentityBinding",
    "IdentityResolver",
    "RecognitionPolicy",
]
