"""
Travel Photo API - World MiniKit Integration
Pay 0.5 WLD, get a photo of yourself at a famous landmark
"""

import os
import logging
import sys

# Configure logging for production visibility
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger("travel_api")
logger.setLevel(logging.INFO)

# Load environment variables FIRST before any other imports
from dotenv import load_dotenv
load_dotenv()

logger.info("=" * 60)
logger.info("TRAVEL PHOTO API STARTING")
logger.info("=" * 60)
logger.info(f"GEMINI_API_KEY set: {bool(os.getenv('GEMINI_API_KEY'))}")
logger.info(f"DEV_PORTAL_API_KEY set: {bool(os.getenv('DEV_PORTAL_API_KEY'))}")
logger.info(f"WLD_APP_ID set: {bool(os.getenv('WLD_APP_ID'))}")
logger.info(f"PAYMENT_RECIPIENT_ADDRESS set: {bool(os.getenv('PAYMENT_RECIPIENT_ADDRESS'))}")
logger.info(f"PAY_REF_COOKIE_SECRET set: {bool(os.getenv('PAY_REF_COOKIE_SECRET'))}")
logger.info(f"R2_BUCKET_NAME set: {bool(os.getenv('R2_BUCKET_NAME'))}")
logger.info("=" * 60)

# Now import the rest
from typing import Optional

from fastapi import FastAPI, Cookie, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from api.config import cors_allow_origins
from api.references import (
    InMemoryReferenceStore,
    ReferenceStore,
    check_reference,
    consume_for_generation,
    issue_reference,
)
from api.pay_cookie import (
    PAY_REF_COOKIE,
    clear_reference_cookie,
    read_reference_cookie,
    set_reference_cookie,
)
from api.payment import confirm_payment, get_payment_info
from api.r2_storage import get_signed_image_url, is_r2_configured, upload_generated_image
from travel_photo import (
    GeminiNotConfiguredError,
    GenerationError,
    InvalidImageError,
    NotAPersonError,
    UnsupportedLocationError,
    SUPPORTED_LOCATIONS,
    generate_travel_image,
    is_supported_location,
)

app = FastAPI(
    title="Travel Photo Mini App",
    description="Pay-per-photo AI travel pictures with World MiniKit payments",
    version="1.0.0",
)

# CORS for the mini app frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_allow_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============== In-Memory Storage ==============

reference_store = InMemoryReferenceStore()


def get_reference_store() -> ReferenceStore:
    return reference_store


# ============== Models ==============

class PaymentSuccessPayload(BaseModel):
    """MiniKit pay() success payload, as forwarded by the client"""
    model_config = ConfigDict(extra="allow")

    reference: Optional[str] = None
    transaction_id: Optional[str] = None
    status: Optional[str] = None


class ConfirmPaymentRequest(BaseModel):
    payload: Optional[PaymentSuccessPayload] = None


class GenerateImageRequest(BaseModel):
    """Input for travel photo generation"""
    model_config = ConfigDict(populate_by_name=True)

    image_data_url: Optional[str] = Field(
        default=None,
        alias="imageDataUrl",
        description="Source photo as 'data:image/...;base64,...'"
    )
    location: Optional[str] = Field(
        default=None,
        description="Landmark key, e.g. 'france', 'japan'"
    )
    payment_reference: Optional[str] = Field(
        default=None,
        alias="paymentReference",
        description="Confirmed payment reference (32 hex chars)"
    )
    user_identifier: Optional[str] = Field(
        default=None,
        alias="userIdentifier",
        description="Wallet address or username; enables upload to storage"
    )


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies get the endpoint's own error shape, never a 422"""
    logger.warning(f"Rejected malformed request to {request.url.path}: {exc.errors()}")
    if request.url.path == "/confirm-payment":
        return JSONResponse(status_code=400, content={"success": False, "error": "Invalid request body"})
    return error_response(400, "Invalid request body")


# ============== Info Endpoints ==============

@app.get("/")
async def root():
    """Health check and API info"""
    return {
        "name": "Travel Photo Mini App",
        "version": "1.0.0",
        "locations": list(SUPPORTED_LOCATIONS),
        "reference_count": len(reference_store),
    }


@app.get("/payment-info")
async def payment_info():
    """Get payment information for users"""
    return get_payment_info()


# ============== Payment Endpoints ==============

@app.post("/issue-payment-reference")
@app.post("/initiate-payment")
async def issue_payment_reference(store: ReferenceStore = Depends(get_reference_store)):
    """Issue a one-time payment reference (also mirrored in the pay_ref cookie)"""
    reference_id = issue_reference(store)
    response = JSONResponse(content={"id": reference_id})
    set_reference_cookie(response, reference_id)
    return response


@app.post("/confirm-payment")
async def confirm_payment_endpoint(
    request: ConfirmPaymentRequest,
    pay_ref: Optional[str] = Cookie(default=None, alias=PAY_REF_COOKIE),
    store: ReferenceStore = Depends(get_reference_store),
):
    """Verify a MiniKit payment against the Developer Portal"""
    payload = request.payload or PaymentSuccessPayload()

    try:
        result = await confirm_payment(
            reference=payload.reference,
            transaction_id=payload.transaction_id,
            cookie_reference=read_reference_cookie(pay_ref),
            store=store,
        )
    except Exception:
        logger.exception("Unexpected error confirming payment")
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})

    if not result.success:
        return JSONResponse(
            status_code=result.status_code,
            content={"success": False, "error": result.error},
        )

    logger.info("Payment confirmed successfully")
    response = JSONResponse(content={"success": True})
    clear_reference_cookie(response)
    return response


# ============== Generation Endpoint ==============

@app.post("/generate-image")
async def generate_image(
    request: GenerateImageRequest,
    store: ReferenceStore = Depends(get_reference_store),
):
    """Generate a travel photo; consumes the payment reference"""
    if not request.image_data_url or not request.location:
        return error_response(400, "Missing required parameters: imageDataUrl and location")

    reference_failure = check_reference(request.payment_reference)
    if reference_failure is not None:
        return error_response(reference_failure.status_code, reference_failure.error)

    if not is_supported_location(request.location):
        return error_response(400, "Invalid location selected")

    # Burned before generation: a failed attempt still uses up the payment
    consumption = consume_for_generation(request.payment_reference, store)
    if not consumption.success:
        return error_response(consumption.status_code, consumption.error)

    try:
        generated_image = await generate_travel_image(request.image_data_url, request.location)
    except NotAPersonError:
        return error_response(400, "Uploaded image is not of a person. Please upload a clear photo of yourself.")
    except InvalidImageError:
        return error_response(400, "Invalid image format. Please upload a valid image file.")
    except UnsupportedLocationError:
        return error_response(400, "Invalid location selected")
    except GeminiNotConfiguredError:
        logger.error("GEMINI_API_KEY environment variable is not set")
        return error_response(500, "Server configuration error. Please try again later.")
    except GenerationError as e:
        logger.error(f"Error generating travel image: {e}")
        return error_response(500, "Failed to generate travel image. Please try again.")
    except Exception:
        logger.exception("Unexpected error generating travel image")
        return error_response(500, "Failed to generate travel image. Please try again.")

    content = {"success": True, "imageDataUrl": generated_image}

    if request.user_identifier:
        if not is_r2_configured():
            logger.warning("R2 not configured - skipping upload of generated image")
        else:
            try:
                upload = await upload_generated_image(generated_image, request.user_identifier, request.location)
            except Exception:
                logger.exception("Unexpected error uploading generated image")
                return error_response(500, "Failed to save generated image. Please try again.")
            if not upload.success:
                logger.error(f"Upload failed for reference {request.payment_reference}: {upload.error}")
                return error_response(500, "Failed to save generated image. Please try again.")
            content["imageUrl"] = upload.url
            content["imageKey"] = upload.key

    return JSONResponse(content=content)


# ============== Storage Endpoints ==============

@app.get("/image-url")
async def image_url(key: Optional[str] = Query(default=None), expires_in: int = Query(default=3600, ge=60, le=86400)):
    """Fresh presigned link for a stored travel photo"""
    if not key:
        return error_response(400, "Missing required parameter: key")
    if not key.startswith("users/") or ".." in key:
        return error_response(400, "Invalid image key")

    url = await get_signed_image_url(key, expires_in=expires_in)
    if url is None:
        return error_response(503, "Image storage is not available")
    return {"url": url, "key": key, "expires_in": expires_in}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
