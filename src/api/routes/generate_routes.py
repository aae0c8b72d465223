"""
Generation proxy - forwards structured-output requests to Gemini with the
caller's own API key (BYOK, header ``x-custom-api-key``).
"""
import asyncio
import base64
import binascii
import threading
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from fastapi import APIRouter, HTTPException, Request, status
from google.api_core import exceptions as google_exceptions
from pydantic import BaseModel, Field, ValidationError

from utils.logger import get_logger

router = APIRouter()

API_KEY_HEADER = "x-custom-api-key"
API_KEY_PREFIX = "AIza"

# genai.configure() sets a process-wide key; serialize configure + call
_genai_lock = threading.Lock()


# ── Pydantic models for request/response ──────────────────────────

class GenerateContents(BaseModel):
    parts: List[Dict[str, Any]] = Field(..., min_length=1)


class GenerateConfig(BaseModel):
    responseMimeType: Optional[str] = None
    responseSchema: Optional[Dict[str, Any]] = None
    systemInstruction: Optional[str] = None


class GenerateRequest(BaseModel):
    """Body of POST /api/generate."""
    model: str = Field(..., min_length=1)
    contents: GenerateContents
    config: Optional[GenerateConfig] = None


class GenerateResponse(BaseModel):
    text: str
    usageMetadata: Optional[Dict[str, int]] = None


# ── Helpers ───────────────────────────────────────────────────────

def to_sdk_parts(parts: List[Dict[str, Any]]) -> List[Any]:
    """
    Convert wire parts ({text} / {inlineData: {mimeType, data}}) into the
    SDK's content parts. Raises ValueError on an unusable part.
    """
    converted = []
    for index, part in enumerate(parts):
        if "text" in part:
            converted.append(str(part["text"]))
            continue
        inline = part.get("inlineData")
        if not isinstance(inline, dict) or not inline.get("data"):
            raise ValueError(f"part {index} has neither text nor inlineData")
        try:
            data = base64.b64decode(inline["data"], validate=True)
        except (binascii.Error, TypeError) as e:
            raise ValueError(f"part {index} inlineData is not valid base64") from e
        converted.append({"mime_type": inline.get("mimeType") or "image/jpeg", "data": data})
    return converted


def _usage_to_dict(usage) -> Optional[Dict[str, int]]:
    if usage is None:
        return None
    return {
        "promptTokenCount": int(getattr(usage, "prompt_token_count", 0) or 0),
        "candidatesTokenCount": int(getattr(usage, "candidates_token_count", 0) or 0),
        "totalTokenCount": int(getattr(usage, "total_token_count", 0) or 0),
    }


def _call_gemini(api_key: str, body: GenerateRequest, parts: List[Any]) -> GenerateResponse:
    config = body.config or GenerateConfig()
    generation_config = None
    if config.responseMimeType or config.responseSchema:
        generation_config = genai.GenerationConfig(
            response_mime_type=config.responseMimeType,
            response_schema=config.responseSchema,
        )

    with _genai_lock:
        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(body.model, system_instruction=config.systemInstruction)
        response = model.generate_content(parts, generation_config=generation_config)

    return GenerateResponse(text=response.text or "", usageMetadata=_usage_to_dict(response.usage_metadata))


# ── Routes ────────────────────────────────────────────────────────

@router.post(
    "/generate",
    response_model=GenerateResponse,
    summary="Proxy a structured-output request to Gemini",
)
async def generate(request: Request):
    """
    Forward one generation request using the caller's API key.

    - **401** missing or malformed key
    - **400** malformed body
    - **503** Gemini busy, quota exhausted or unreachable
    - **500** any other failure
    """
    logger = get_logger()

    api_key = (request.headers.get(API_KEY_HEADER) or "").strip()
    if not api_key.startswith(API_KEY_PREFIX):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid API key (BYOK required)",
        )

    try:
        body = GenerateRequest.model_validate(await request.json())
        parts = to_sdk_parts(body.contents.parts)
    except (ValidationError, ValueError) as e:
        logger.warning(f"Rejected generate request: {e}", component="API")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid request body: {e}")

    logger.info(f"Generate: model={body.model}, parts={len(parts)}", component="API")

    try:
        return await asyncio.to_thread(_call_gemini, api_key, body, parts)
    except (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied) as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e.message))
    except google_exceptions.InvalidArgument as e:
        if "api key" in str(e.message).lower():
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e.message))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e.message))
    except (google_exceptions.ResourceExhausted, google_exceptions.ServiceUnavailable,
            google_exceptions.DeadlineExceeded) as e:
        logger.warning(f"Gemini unavailable: {e}", component="API")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e.message))
    except Exception as e:
        logger.error(f"Generate failed: {e}", component="API", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e) or "Internal Server Error",
        )
