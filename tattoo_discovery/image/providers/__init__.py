"""Vendor adapters for image generation.

Each adapter subclasses `ImageProvider` and normalizes one vendor's response
shape into raw image bytes.
"""

from tattoo_discovery.image.providers.base import ImageProvider
from tattoo_discovery.image.providers.gemini import GeminiProvider
from tattoo_discovery.image.providers.huggingface import HuggingFaceProvider
from tattoo_discovery.image.providers.replicate import ReplicateProvider
from tattoo_discovery.image.providers.vertex import VertexImagenProvider

__all__ = [
    "ImageProvider",
    "GeminiProvider",
    "HuggingFaceProvider",
    "ReplicateProvider",
    "VertexImagenProvider",
]
