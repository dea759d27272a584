"""
R2 Storage Module
Stores generated travel photos in Cloudflare R2 (S3-compatible API)
"""

import re
import time
import base64
import asyncio
import logging
import binascii
from typing import Optional
from dataclasses import dataclass

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from api import config
from travel_photo.generator import InvalidImageError, parse_image_data_url

logger = logging.getLogger("travel_api.storage")

R2_REQUIRED_ENV = ("R2_ACCOUNT_ID", "R2_ACCESS_KEY_ID", "R2_SECRET_ACCESS_KEY", "R2_BUCKET_NAME")

# Wallet addresses and usernames only; anything else becomes "_"
UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass
class UploadResult:
    """Result of R2 upload"""
    success: bool
    url: Optional[str] = None
    key: Optional[str] = None
    error: Optional[str] = None


def is_r2_configured() -> bool:
    """Check if R2 credentials and bucket are configured"""
    return all(config.get_env(name) for name in R2_REQUIRED_ENV)


def get_r2_client(settings: dict[str, str]):
    return boto3.client(
        "s3",
        region_name="auto",
        endpoint_url=f"https://{settings['R2_ACCOUNT_ID']}.r2.cloudflarestorage.com",
        aws_access_key_id=settings["R2_ACCESS_KEY_ID"],
        aws_secret_access_key=settings["R2_SECRET_ACCESS_KEY"],
        config=Config(signature_version="s3v4"),
    )


def build_object_key(user_identifier: str, location: str, timestamp_ms: int) -> str:
    """users/{user}/travel-photo-{location}-{ms}.jpg"""
    safe_user = UNSAFE_KEY_CHARS.sub("_", user_identifier) or "anonymous"
    return f"users/{safe_user}/travel-photo-{location}-{timestamp_ms}.jpg"


def _put_object(settings: dict[str, str], key: str, body: bytes, metadata: dict[str, str]) -> Optional[str]:
    client = get_r2_client(settings)
    client.put_object(
        Bucket=settings["R2_BUCKET_NAME"],
        Key=key,
        Body=body,
        ContentType="image/jpeg",
        Metadata=metadata,
    )
    public_url = config.get_env("R2_PUBLIC_URL")
    if public_url:
        return f"{public_url.rstrip('/')}/{key}"
    # Private bucket: hand out a time-limited link instead
    return client.generate_presigned_url(
        "get_object",
        Params={"Bucket": settings["R2_BUCKET_NAME"], "Key": key},
        ExpiresIn=3600,
    )


async def upload_generated_image(image_data_url: str, user_identifier: str, location: str) -> UploadResult:
    """
    Upload a generated image (data URL) to R2.
    Returns the object key and a retrievable URL; never raises.
    """
    try:
        settings = config.require(*R2_REQUIRED_ENV)
    except config.ServerConfigurationError as e:
        logger.error(f"R2 configuration is incomplete: {e}")
        return UploadResult(success=False, error="R2 configuration is incomplete")

    try:
        _, base64_data = parse_image_data_url(image_data_url)
        image_bytes = base64.b64decode(base64_data)
    except (InvalidImageError, binascii.Error) as e:
        return UploadResult(success=False, error=f"Invalid image data URL format: {e}")

    timestamp_ms = int(time.time() * 1000)
    key = build_object_key(user_identifier, location, timestamp_ms)
    metadata = {
        "location": location,
        "userIdentifier": user_identifier,
        "timestamp": str(timestamp_ms),
        "generatedBy": "travel-ai",
    }

    try:
        url = await asyncio.to_thread(_put_object, settings, key, image_bytes, metadata)
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Error uploading to R2: {e}")
        return UploadResult(success=False, error=str(e))

    logger.info(f"Successfully uploaded image to R2: {key}")
    return UploadResult(success=True, url=url, key=key)


async def get_signed_image_url(key: str, expires_in: int = 3600) -> Optional[str]:
    """Presigned GET URL for a stored image, or None if R2 is unavailable"""
    try:
        settings = config.require(*R2_REQUIRED_ENV)
    except config.ServerConfigurationError:
        return None

    try:
        client = get_r2_client(settings)
        return await asyncio.to_thread(
            client.generate_presigned_url,
            "get_object",
            Params={"Bucket": settings["R2_BUCKET_NAME"], "Key": key},
            ExpiresIn=expires_in,
        )
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Error generating signed URL: {e}")
        return None
