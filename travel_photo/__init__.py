# Travel Photo Generation
from .prompts import (
    LOCATION_PROMPTS,
    SUPPORTED_LOCATIONS,
    is_supported_location,
    get_location_prompt,
    get_fallback_prompt,
)

from .generator import (
    GenerationError,
    GeminiNotConfiguredError,
    InvalidImageError,
    NotAPersonError,
    UnsupportedLocationError,
    NoImageReturnedError,
    parse_image_data_url,
    generate_travel_image,
)

__all__ = [
    # Prompts
    "LOCATION_PROMPTS",
    "SUPPORTED_LOCATIONS",
    "is_supported_location",
    "get_location_prompt",
    "get_fallback_prompt",
    # Generator
    "GenerationError",
    "GeminiNotConfiguredError",
    "InvalidImageError",
    "NotAPersonError",
    "UnsupportedLocationError",
    "NoImageReturnedError",
    "parse_image_data_url",
    "generate_travel_image",
]
