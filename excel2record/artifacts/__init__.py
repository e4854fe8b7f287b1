"""Artifact persistence and identity helpers."""

from .identity import extract_key_value, sanitize_identity
from .store import ARTIFACT_EXTENSION, META_SUFFIX, ArtifactStore

__all__ = [
    "ArtifactStore",
    "ARTIFACT_EXTENSION",
    "META_SUFFIX",
    "extract_key_value",
    "sanitize_identity",
]
