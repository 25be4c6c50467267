"""
Two-factor management API routes.

All endpoints act on the authenticated user:
- POST /auth/2fa/setup - Start authenticator enrollment
- POST /auth/2fa/confirm - Finish enrollment with a first code
- POST /auth/2fa/contact - Send a code to the email address or phone
- POST /auth/2fa/contact/confirm - Mark the email address or phone verified
- POST /auth/2fa/delivery - Switch to email or SMS delivered codes
- POST /auth/2fa/disable - Turn two-factor off
- POST /auth/2fa/recovery-codes - Replace recovery codes
"""

import logging

from fastapi import APIRouter, Response, status

from gatekeeper.api.dependencies import ClientIP, CoreContainer, CurrentClaims
from gatekeeper.api.schemas import (
    ContactConfirmRequest,
    ContactVerificationRequest,
    DisableTwoFactorRequest,
    EnableDeliveryRequest,
    RecoveryCodesResponse,
    TwoFactorCodeRequest,
    TwoFactorSetupResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/2fa", tags=["Two-Factor"])


@router.post("/setup", response_model=TwoFactorSetupResponse, summary="Start authenticator setup")
async def begin_setup(claims: CurrentClaims, container: CoreContainer) -> TwoFactorSetupResponse:
    """
    Generate a new shared secret and its QR code.

    Two-factor is not active until ``/confirm`` succeeds.
    """
    setup = await container.two_factor_service.begin_setup(claims.subject)
    return TwoFactorSetupResponse(
        secret=setup.secret,
        provisioning_uri=setup.provisioning_uri,
        qr_code_png_base64=setup.qr_code_png_base64,
    )


@router.post("/confirm", response_model=RecoveryCodesResponse, summary="Confirm authenticator setup")
async def confirm_setup(
    body: TwoFactorCodeRequest, claims: CurrentClaims, container: CoreContainer
) -> RecoveryCodesResponse:
    codes = await container.two_factor_service.confirm_setup(claims.subject, body.code)
    return RecoveryCodesResponse(recovery_codes=codes)


@router.post("/contact", status_code=status.HTTP_202_ACCEPTED, summary="Send contact verification code")
async def start_contact_verification(
    body: ContactVerificationRequest, claims: CurrentClaims, container: CoreContainer
) -> Response:
    """
    Send a code to the user's email address or to a phone number.

    A new phone number replaces the stored one only after confirmation.

    Raises:
        422: Channel does not deliver codes, or no phone number
        503: Code could not be delivered
    """
    await container.two_factor_service.start_contact_verification(
        claims.subject, body.channel, phone_number=body.phone_number
    )
    return Response(status_code=status.HTTP_202_ACCEPTED)


@router.post("/contact/confirm", response_model=UserResponse, summary="Confirm contact verification code")
async def confirm_contact_verification(
    body: ContactConfirmRequest, claims: CurrentClaims, container: CoreContainer
) -> UserResponse:
    user = await container.two_factor_service.confirm_contact_verification(
        claims.subject, body.channel, body.code
    )
    return UserResponse.model_validate(user)


@router.post("/delivery", response_model=RecoveryCodesResponse, summary="Use delivered codes")
async def enable_code_delivery(
    body: EnableDeliveryRequest, claims: CurrentClaims, container: CoreContainer
) -> RecoveryCodesResponse:
    """
    Enable email or SMS one-time codes.

    Raises:
        422: Verified email or phone number missing
    """
    codes = await container.two_factor_service.enable_code_delivery(claims.subject, body.method)
    return RecoveryCodesResponse(recovery_codes=codes)


@router.post("/disable", response_model=UserResponse, summary="Turn two-factor off")
async def disable(
    body: DisableTwoFactorRequest, claims: CurrentClaims, container: CoreContainer, ip: ClientIP
) -> UserResponse:
    user = await container.two_factor_service.disable(
        claims.subject,
        code=body.code,
        recovery_code=body.recovery_code,
        ip_address=ip,
    )
    return UserResponse.model_validate(user)


@router.post("/recovery-codes", response_model=RecoveryCodesResponse, summary="Regenerate recovery codes")
async def regenerate_recovery_codes(
    body: TwoFactorCodeRequest, claims: CurrentClaims, container: CoreContainer
) -> RecoveryCodesResponse:
    codes = await container.two_factor_service.regenerate_recovery_codes(claims.subject, body.code)
    return RecoveryCodesResponse(recovery_codes=codes)
