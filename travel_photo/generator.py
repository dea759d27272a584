"""
Travel Photo Generator
=======================
Places the person from an uploaded photo at a landmark using Gemini
image editing.

Flow:
1. Check the upload actually shows a person
2. Generate with the landmark prompt
3. If the model answers with text only, retry once with a softer prompt

Every model call retries internal (500-class) errors with exponential
backoff.
"""

import os
import re
import base64
import asyncio
import binascii
import logging
from typing import Optional, Tuple

from google import genai
from google.genai import errors, types

from .prompts import (
    PERSON_CHECK_PROMPT,
    get_fallback_prompt,
    get_location_prompt,
    is_supported_location,
)

logger = logging.getLogger("travel_photo")

DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image-preview"

MAX_RETRIES = 3
RETRY_INITIAL_DELAY = 1.0  # seconds, doubled per attempt

DATA_URL_PATTERN = re.compile(r"^data:(image/\w+);base64,(.*)$")


class GenerationError(Exception):
    """Image generation failed."""


class GeminiNotConfiguredError(GenerationError):
    """GEMINI_API_KEY is not set."""


class InvalidImageError(GenerationError):
    """The upload is not a base64 image data URL."""


class NotAPersonError(GenerationError):
    """The upload does not show a person."""


class UnsupportedLocationError(GenerationError):
    """No prompt exists for the requested location."""


class NoImageReturnedError(GenerationError):
    """The model answered with text instead of an image."""


def parse_image_data_url(image_data_url: str) -> Tuple[str, str]:
    """Split 'data:image/...;base64,...' into (mime type, base64 data)."""
    match = DATA_URL_PATTERN.match(image_data_url or "")
    if not match:
        raise InvalidImageError("Invalid image data URL format. Expected 'data:image/...;base64,...'")
    return match.group(1), match.group(2)


def _get_client() -> genai.Client:
    api_key = os.environ.get("GEMINI_API_KEY")
    if not api_key:
        raise GeminiNotConfiguredError("GEMINI_API_KEY environment variable is not set")
    return genai.Client(api_key=api_key)


def _image_model() -> str:
    return os.environ.get("GEMINI_IMAGE_MODEL") or DEFAULT_IMAGE_MODEL


def is_internal_error(error: Exception) -> bool:
    if isinstance(error, errors.APIError):
        return error.code == 500 or error.status == "INTERNAL"
    return "INTERNAL" in str(error)


async def call_with_retry(client: genai.Client, image_part: types.Part, prompt: str) -> types.GenerateContentResponse:
    """Call the model, retrying internal errors up to MAX_RETRIES times."""
    for attempt in range(1, MAX_RETRIES + 1):
        try:
            return await client.aio.models.generate_content(
                model=_image_model(),
                contents=[image_part, prompt],
            )
        except Exception as e:
            logger.error(f"Error calling Gemini API (Attempt {attempt}/{MAX_RETRIES}): {e}")
            if is_internal_error(e) and attempt < MAX_RETRIES:
                delay = RETRY_INITIAL_DELAY * (2 ** (attempt - 1))
                logger.info(f"Internal error detected. Retrying in {delay:.1f}s...")
                await asyncio.sleep(delay)
                continue
            raise
    raise GenerationError("Gemini API call failed after all retries.")


def extract_image_data_url(response: types.GenerateContentResponse) -> str:
    """Return the first inline image as a data URL, or raise NoImageReturnedError."""
    candidates = response.candidates or []
    parts = []
    if candidates and candidates[0].content:
        parts = candidates[0].content.parts or []

    for part in parts:
        if part.inline_data and part.inline_data.data:
            encoded = base64.b64encode(part.inline_data.data).decode("ascii")
            return f"data:{part.inline_data.mime_type};base64,{encoded}"

    text_response: Optional[str] = response.text
    logger.error(f"API did not return an image. Response: {text_response}")
    raise NoImageReturnedError(
        f'The AI model responded with text instead of an image: "{text_response or "No text response received."}"'
    )


async def validate_person(client: genai.Client, image_part: types.Part) -> None:
    logger.info("Validating that the uploaded image contains a person...")
    try:
        response = await call_with_retry(client, image_part, PERSON_CHECK_PROMPT)
    except Exception as e:
        logger.error(f"Error during image validation: {e}")
        raise GenerationError("Failed to validate the uploaded image. Please try again.") from e

    answer = (response.text or "").strip().lower()
    if answer != "yes":
        raise NotAPersonError("Uploaded image is not of a person. Please upload a clear photo of yourself.")
    logger.info("Image validation successful. Proceeding with travel image generation...")


async def generate_travel_image(image_data_url: str, location: str) -> str:
    """
    Generate a travel photo of the uploaded person at a landmark.

    Args:
        image_data_url: Source image as 'data:image/...;base64,...'
        location: Landmark key, e.g. "france"

    Returns:
        Generated image as a data URL
    """
    client = _get_client()
    mime_type, base64_data = parse_image_data_url(image_data_url)
    try:
        image_bytes = base64.b64decode(base64_data)
    except binascii.Error as e:
        raise InvalidImageError("Invalid image data URL format. Expected 'data:image/...;base64,...'") from e
    image_part = types.Part.from_bytes(data=image_bytes, mime_type=mime_type)

    await validate_person(client, image_part)

    if not is_supported_location(location):
        raise UnsupportedLocationError(f"Invalid location: {location}")

    try:
        logger.info(f"Attempting generation with original prompt for {location}...")
        response = await call_with_retry(client, image_part, get_location_prompt(location))
        return extract_image_data_url(response)
    except NoImageReturnedError:
        logger.warning("Original prompt was likely blocked. Trying a fallback prompt.")
    except Exception as e:
        logger.error(f"An unrecoverable error occurred during image generation: {e}")
        raise GenerationError(f"The AI model failed to generate an image. Details: {e}") from e

    try:
        logger.info(f"Attempting generation with fallback prompt for {location}...")
        response = await call_with_retry(client, image_part, get_fallback_prompt(location))
        return extract_image_data_url(response)
    except Exception as e:
        logger.error(f"Fallback prompt also failed: {e}")
        raise GenerationError(
            f"The AI model failed with both original and fallback prompts. Last error: {e}"
        ) from e
