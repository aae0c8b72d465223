"""
Email verification route - thin proxy to the licensing upstream.
"""
import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from account.entitlement_client import EntitlementClient

router = APIRouter()


class VerifyEmailRequest(BaseModel):
    email: Optional[str] = None
    code: Optional[str] = None


class VerifyEmailResponse(BaseModel):
    verified: bool
    message: str = ""


def get_entitlement_client() -> EntitlementClient:
    return EntitlementClient()


@router.post(
    "/verify-email",
    response_model=VerifyEmailResponse,
    summary="Check whether an email (optionally with a license code) is entitled",
)
async def verify_email(body: VerifyEmailRequest,
                       client: EntitlementClient = Depends(get_entitlement_client)):
    if not (body.email or "").strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is required")

    result = await asyncio.to_thread(client.verify, body.email, body.code)
    return VerifyEmailResponse(verified=result.verified, message=result.message)
