"""Image and voice generation."""

from .image import ImageGenerator, KieAiImageGenerator, build_image_prompt, sanitize_prompt
from .voice import VoiceGenerator

__all__ = [
    "ImageGenerator",
    "KieAiImageGenerator",
    "VoiceGenerator",
    "build_image_prompt",
    "sanitize_prompt",
]
