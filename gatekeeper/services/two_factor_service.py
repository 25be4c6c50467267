"""
Two-factor lifecycle: authenticator setup, email/SMS codes, contact
verification, disable.

State per user: ``DISABLED -> PENDING_SETUP -> ENABLED``. Disabling an
enabled second factor requires a valid current code or recovery code, and
clears the secret and every recovery code in the same transaction that
ends the user's sessions.
"""

import asyncio
import base64
import json
import logging
from collections.abc import Callable
from uuid import UUID

from gatekeeper.application.dto.auth_dto import TwoFactorSetup
from gatekeeper.application.ports.cache_port import CachePort, CacheWrite
from gatekeeper.application.ports.notification_port import NotificationPort, QrRendererPort
from gatekeeper.application.ports.unit_of_work_port import UnitOfWorkFactory, UnitOfWorkPort
from gatekeeper.core.clock import Clock, utc_now
from gatekeeper.core.config import Settings
from gatekeeper.core.exceptions import (
    InvalidInputError,
    NotFoundError,
    ServiceUnavailableError,
    TwoFactorInvalidCodeError,
)
from gatekeeper.core.security import constant_time_equals, sha256_hex
from gatekeeper.domain.entities.refresh_token import RevocationReason
from gatekeeper.domain.entities.user import User
from gatekeeper.domain.exceptions import InvalidStateTransitionError
from gatekeeper.domain.value_objects.two_factor import TwoFactorMethod, TwoFactorState
from gatekeeper.services import alerts, cache_keys
from gatekeeper.services.base import BaseService
from gatekeeper.services.token_service import TokenService
from gatekeeper.services.totp_service import TotpService

logger = logging.getLogger(__name__)

DELIVERED_CODE_DIGITS = 6


class TwoFactorService(BaseService):
    """
    Manages a user's second factor.

    Args:
        uow_factory: Unit of work factory
        settings: Application settings
        cache: Holds delivered one-time codes and used TOTP codes
        totp_service: TOTP engine and recovery codes
        token_service: Ends sessions when two-factor is disabled
        notifier: Delivers email/SMS codes and alerts
        qr_renderer: Renders provisioning URIs
        clock: Time source
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        settings: Settings,
        cache: CachePort,
        totp_service: TotpService,
        token_service: TokenService,
        notifier: NotificationPort,
        qr_renderer: QrRendererPort,
        clock: Clock = utc_now,
    ):
        super().__init__(uow_factory, clock)
        self.settings = settings
        self.cache = cache
        self.totp = totp_service
        self.token_service = token_service
        self.notifier = notifier
        self.qr_renderer = qr_renderer

    # =========================================================================
    # Authenticator app setup
    # =========================================================================

    async def begin_setup(self, user_id: UUID) -> TwoFactorSetup:
        """
        Generate a new authenticator secret and move the user to PENDING_SETUP.

        Calling this again while setup is pending replaces the secret.

        Returns:
            TwoFactorSetup with the secret, URI and QR code, shown once

        Raises:
            NotFoundError: If the user does not exist
            InvalidStateTransitionError: If two-factor is already enabled
        """
        secret = self.totp.generate_secret()
        async with self._transaction() as uow:
            user = await self._get_user(uow, user_id)
            user.begin_two_factor_setup(secret)
            user.updated_at = self._clock()
            await uow.users.update(user)

        uri = self.totp.generate_provisioning_uri(secret, user.email)
        png = await asyncio.to_thread(self.qr_renderer.render_png, uri)
        logger.info(f"Two-factor setup started for user {user_id}")
        return TwoFactorSetup(
            secret=secret,
            provisioning_uri=uri,
            qr_code_png_base64=base64.b64encode(png).decode("ascii"),
        )

    async def confirm_setup(self, user_id: UUID, code: str) -> list[str]:
        """
        Confirm the pending secret with a code from the authenticator.

        Enabling replaces any previous recovery codes with a fresh set.

        Args:
            user_id: User finishing setup
            code: Current TOTP code

        Returns:
            New recovery codes (plaintext, shown once)

        Raises:
            InvalidStateTransitionError: If no setup is pending
            TwoFactorInvalidCodeError: If the code is wrong
        """
        async with self._transaction() as uow:
            user = await self._get_user(uow, user_id)
            if user.two_factor_state != TwoFactorState.PENDING_SETUP:
                raise InvalidStateTransitionError("two-factor", str(user.two_factor_state), "confirm")
            if not self.totp.verify_code(user.two_factor_secret, code):
                raise TwoFactorInvalidCodeError()

            user.confirm_two_factor_setup()
            user.updated_at = self._clock()
            await uow.users.update(user)
            recovery_codes = await self.totp.replace_recovery_codes(user_id, uow=uow)

        logger.info(f"Two-factor (app) enabled for user {user_id}")
        await alerts.send_security_alert(self.notifier, user, alerts.TWO_FACTOR_ENABLED)
        return recovery_codes

    async def enable_code_delivery(self, user_id: UUID, method: TwoFactorMethod) -> list[str]:
        """
        Enable an email or SMS second factor.

        The destination must already be verified.

        Returns:
            New recovery codes (plaintext, shown once)

        Raises:
            InvalidInputError: If the method does not deliver codes or the
                destination is unverified
            InvalidStateTransitionError: If two-factor is already enabled
        """
        if not method.delivers_code:
            raise InvalidInputError(field="method", message=f"Method {method} does not deliver codes")

        async with self._transaction() as uow:
            user = await self._get_user(uow, user_id)
            if method == TwoFactorMethod.EMAIL and not user.email_verified:
                raise InvalidInputError(field="email", message="Email address is not verified")
            if method == TwoFactorMethod.SMS and not (user.phone_number and user.phone_verified):
                raise InvalidInputError(field="phone_number", message="Phone number is not verified")

            user.enable_code_delivery(method)
            user.updated_at = self._clock()
            await uow.users.update(user)
            recovery_codes = await self.totp.replace_recovery_codes(user_id, uow=uow)

        logger.info(f"Two-factor ({method}) enabled for user {user_id}")
        await alerts.send_security_alert(self.notifier, user, alerts.TWO_FACTOR_ENABLED)
        return recovery_codes

    # =========================================================================
    # Disable
    # =========================================================================

    async def disable(
        self,
        user_id: UUID,
        code: str | None = None,
        recovery_code: str | None = None,
        ip_address: str | None = None,
    ) -> User:
        """
        Turn two-factor off.

        An enabled second factor is only removed with a valid current code
        or an unused recovery code. A pending setup is simply cancelled.
        The secret and every recovery code are deleted, and all sessions
        end, in one transaction.

        Raises:
            InvalidStateTransitionError: If two-factor is already disabled
            TwoFactorInvalidCodeError: If neither code is valid
        """
        async with self._transaction() as uow:
            user = await self._get_user(uow, user_id)
            state = user.two_factor_state
            if state == TwoFactorState.DISABLED:
                raise InvalidStateTransitionError("two-factor", str(state), "disable")

            if state == TwoFactorState.ENABLED:
                verified = False
                if code:
                    verified = await self.verify_second_factor(user, code)
                elif recovery_code:
                    verified = await self.totp.consume_recovery_code(user_id, recovery_code, uow=uow)
                if not verified:
                    raise TwoFactorInvalidCodeError()

            user.disable_two_factor()
            user.updated_at = self._clock()
            await uow.users.update(user)
            await uow.recovery_codes.delete_for_user(user_id)
            if state == TwoFactorState.ENABLED:
                await self.token_service.revoke_all_tokens_for_user(
                    user_id,
                    reason=RevocationReason.TWO_FACTOR_DISABLED,
                    ip_address=ip_address,
                    uow=uow,
                )

        if state == TwoFactorState.ENABLED:
            logger.warning(f"Two-factor disabled for user {user_id}")
            await alerts.send_security_alert(self.notifier, user, alerts.TWO_FACTOR_DISABLED)
        return user

    async def regenerate_recovery_codes(self, user_id: UUID, code: str) -> list[str]:
        """
        Replace the recovery codes after proving possession of the second factor.

        Raises:
            InvalidStateTransitionError: If two-factor is not enabled
            TwoFactorInvalidCodeError: If the code is wrong
        """
        async with self._transaction() as uow:
            user = await self._get_user(uow, user_id)
            if user.two_factor_state != TwoFactorState.ENABLED:
                raise InvalidStateTransitionError(
                    "two-factor", str(user.two_factor_state), "regenerate recovery codes for"
                )
            if not await self.verify_second_factor(user, code):
                raise TwoFactorInvalidCodeError()
            return await self.totp.replace_recovery_codes(user_id, uow=uow)

    # =========================================================================
    # Contact verification
    # =========================================================================

    async def start_contact_verification(
        self,
        user_id: UUID,
        channel: TwoFactorMethod,
        phone_number: str | None = None,
    ) -> None:
        """
        Send a code proving the user controls their email address or phone.

        For SMS a new ``phone_number`` may be given; it replaces the stored
        number only once the code is confirmed. Sending again replaces the
        pending code.

        Raises:
            InvalidInputError: If the channel does not deliver codes or no
                phone number is known
            ServiceUnavailableError: If the code could not be delivered
        """
        if not channel.delivers_code:
            raise InvalidInputError(field="channel", message=f"Channel {channel} does not deliver codes")

        async with self._transaction() as uow:
            user = await self._get_user(uow, user_id)

        if channel == TwoFactorMethod.EMAIL:
            destination = user.email
        else:
            destination = (phone_number or user.phone_number or "").strip()
            if not destination:
                raise InvalidInputError(field="phone_number", message="A phone number is required")

        code = self.totp.generate_numeric_code(DELIVERED_CODE_DIGITS)
        pending = {
            "digest": sha256_hex(f"{user_id}:{destination}:{code}"),
            "destination": destination,
        }
        await self.cache.set(
            cache_keys.contact_code(user_id, channel),
            json.dumps(pending),
            self.settings.otp_code_validity_minutes * 60,
        )
        await self._deliver_code(user, channel, destination, code, subject="Confirm your email address")
        logger.info(f"Contact verification ({channel}) started for user {user_id}")

    async def confirm_contact_verification(self, user_id: UUID, channel: TwoFactorMethod, code: str) -> User:
        """
        Confirm a contact verification code and mark the destination verified.

        A matching code is consumed; a wrong one leaves the pending code in
        place until it expires.

        Raises:
            InvalidInputError: If the channel does not deliver codes
            TwoFactorInvalidCodeError: If the code is wrong, expired or used
        """
        if not channel.delivers_code:
            raise InvalidInputError(field="channel", message=f"Channel {channel} does not deliver codes")

        def matches(stored: str) -> bool:
            pending = json.loads(stored)
            presented = sha256_hex(f"{user_id}:{pending['destination']}:{code.strip()}")
            return constant_time_equals(pending["digest"], presented)

        claimed = await self._claim_code(cache_keys.contact_code(user_id, channel), matches) if code else None
        if claimed is None:
            raise TwoFactorInvalidCodeError()
        destination = json.loads(claimed)["destination"]

        async with self._transaction() as uow:
            user = await self._get_user(uow, user_id)
            if channel == TwoFactorMethod.EMAIL:
                if user.email != destination:
                    raise TwoFactorInvalidCodeError()
                user.verify_email()
            else:
                user.set_phone_number(destination)
                user.verify_phone()
            user.updated_at = self._clock()
            await uow.users.update(user)

        logger.info(f"Contact ({channel}) verified for user {user_id}")
        return user

    # =========================================================================
    # Login-time verification
    # =========================================================================

    async def send_login_code(self, user: User) -> None:
        """
        Deliver a one-time code by email or SMS.

        Only the digest of the code is cached, for
        ``otp_code_validity_minutes``. Sending again replaces the code.

        Raises:
            ServiceUnavailableError: If the code could not be delivered
        """
        code = self.totp.generate_numeric_code(DELIVERED_CODE_DIGITS)
        await self.cache.set(
            cache_keys.delivered_code(user.id),
            sha256_hex(f"{user.id}:{code}"),
            self.settings.otp_code_validity_minutes * 60,
        )
        if user.two_factor_method == TwoFactorMethod.SMS:
            await self._deliver_code(user, TwoFactorMethod.SMS, user.phone_number, code)
        else:
            await self._deliver_code(user, TwoFactorMethod.EMAIL, user.email, code)

    async def verify_delivered_code(self, user_id: UUID, code: str) -> bool:
        """Check a delivered code; a matching code is consumed by exactly one caller."""
        if not code:
            return False
        presented = sha256_hex(f"{user_id}:{code.strip()}")
        claimed = await self._claim_code(
            cache_keys.delivered_code(user_id),
            lambda stored: constant_time_equals(stored, presented),
        )
        return claimed is not None

    async def verify_second_factor(self, user: User, code: str) -> bool:
        """
        Verify a code for the user's configured method.

        Authenticator codes are accepted once: a code that already
        succeeded is refused for the rest of its validity window.
        """
        if user.two_factor_method == TwoFactorMethod.APP:
            if not self.totp.verify_code(user.two_factor_secret, code):
                return False
            # Set-if-absent: exactly one request claims a code
            window_steps = 2 * self.settings.totp_valid_window + 1
            return await self.cache.add(
                cache_keys.used_totp(user.id, sha256_hex(code.strip())),
                "1",
                window_steps * self.settings.totp_interval_seconds,
            )
        if user.two_factor_method.delivers_code:
            return await self.verify_delivered_code(user.id, code)
        return False

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _deliver_code(
        self,
        user: User,
        channel: TwoFactorMethod,
        destination: str,
        code: str,
        subject: str = "Your verification code",
    ) -> None:
        message = (
            f"Your {self.settings.app_name} verification code is {code}. "
            f"It expires in {self.settings.otp_code_validity_minutes} minutes."
        )
        try:
            if channel == TwoFactorMethod.SMS:
                await self.notifier.send_sms(destination, message)
            else:
                await self.notifier.send_email(destination, subject, message)
        except Exception as e:
            logger.error(f"Failed to deliver verification code to user {user.id}: {e}")
            raise ServiceUnavailableError(message="Could not deliver verification code") from e

    async def _claim_code(self, key: str, matches: Callable[[str], bool]) -> str | None:
        """
        Delete a stored code if ``matches`` accepts it, atomically.

        Returns:
            The claimed value, or None if absent or not matching
        """
        claimed: str | None = None

        def consume(stored: str | None) -> CacheWrite | None:
            nonlocal claimed
            claimed = stored if stored is not None and matches(stored) else None
            return CacheWrite(stored, 0) if claimed is not None else None

        await self.cache.update(key, consume)
        return claimed

    @staticmethod
    async def _get_user(uow: UnitOfWorkPort, user_id: UUID) -> User:
        user = await uow.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError(resource="User")
        return user
