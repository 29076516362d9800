# interstitials.py
import logging
from enum import Enum
from typing import Mapping

from playwright.async_api import Error as PlaywrightError

from .actions import FORCE_CLICK_JS, ActionExecutor, is_stale
from .constants import (
    DIALOG_CONFIRM_ATTEMPTS, DIALOG_TIMEOUT_MS, LOGIN_TIMEOUT_MS, MAX_INTERSTITIAL_TRANSITIONS,
    MAX_REGION_ATTEMPTS, OTP_POLICY, REGION_SETTLE_POLICY, REGION_SUBMIT_POLICY, SHORT_TIMEOUT_MS,
    SIGN_IN_SETTLE_POLICY,
)
from .models import Credentials, FailureKind, InteractionResult, Locator, SessionState, TargetConfig
from .polling import poll_until
from .resolver import LocatorResolver
from .state import SessionStateDetector

logger = logging.getLogger(__name__)


class AuthStage(Enum):
    AWAITING_IDENTIFIER = "AwaitingIdentifier"
    AWAITING_SECRET = "AwaitingSecret"
    AWAITING_OTP = "AwaitingOtp"
    DONE = "Done"


class AuthenticationFlow:
    """Identifier, then secret, then an optional manually satisfied OTP challenge."""

    def __init__(self, resolver: LocatorResolver, executor: ActionExecutor, detector: SessionStateDetector,
                 locators: Mapping[str, Locator], credentials: Credentials, otp_policy=OTP_POLICY):
        self.resolver = resolver
        self.executor = executor
        self.detector = detector
        self.locators = locators
        self.credentials = credentials
        self.otp_policy = otp_policy
        self.stage = AuthStage.AWAITING_IDENTIFIER

    async def run(self) -> InteractionResult:
        if not self.credentials.complete:
            return InteractionResult.fail(
                FailureKind.AUTHENTICATION_REQUIRED, "Sign-in required but credentials are missing 'identifier' or 'secret'")

        if await self.detector.observe() is SessionState.OTP_REQUIRED:
            # challenge already showing, e.g. after an earlier partial sign-in
            self.stage = AuthStage.AWAITING_OTP
            return await self.await_otp()

        self.stage = AuthStage.AWAITING_IDENTIFIER
        result = await self._submit_field("sign_in_identifier", self.credentials.identifier, "sign_in_continue")
        if not result.succeeded:
            return result
        logger.info(f"Entered identifier: {self.credentials.identifier}")

        self.stage = AuthStage.AWAITING_SECRET
        result = await self._submit_field("sign_in_secret", self.credentials.secret, "sign_in_submit")
        if not result.succeeded:
            return result
        logger.info("Entered secret")

        await poll_until(self._left_sign_in, SIGN_IN_SETTLE_POLICY, "sign-in submitted")
        state = await self.detector.observe()
        if state is SessionState.OTP_REQUIRED:
            self.stage = AuthStage.AWAITING_OTP
            return await self.await_otp()
        if state is SessionState.LOGIN_REQUIRED:
            return InteractionResult.fail(FailureKind.AUTHENTICATION_REQUIRED, "Still on the sign-in page after submitting credentials")

        self.stage = AuthStage.DONE
        logger.info("Sign-in completed")
        return InteractionResult.ok("signed in")

    async def await_otp(self) -> InteractionResult:
        """Wait for the one-time password to be entered by hand in the browser."""
        logger.warning("=" * 60)
        logger.warning("OTP verification required: enter the code in the browser window.")
        logger.warning(f"Waiting up to {self.otp_policy.max_attempts * self.otp_policy.interval_ms // 1000}s")
        logger.warning("=" * 60)
        if await poll_until(self._otp_cleared, self.otp_policy, "OTP cleared"):
            self.stage = AuthStage.DONE
            logger.info("OTP verified")
            return InteractionResult.ok("signed in after OTP")
        return InteractionResult.fail(
            FailureKind.OTP_TIMEOUT, f"OTP not completed after {self.otp_policy.max_attempts} checks")

    async def _otp_cleared(self) -> bool:
        state = await self.detector.observe()
        return state not in (SessionState.OTP_REQUIRED, SessionState.LOGIN_REQUIRED)

    async def _left_sign_in(self) -> bool:
        return await self.detector.observe() is not SessionState.LOGIN_REQUIRED

    async def _submit_field(self, field: str, text: str, submit: str) -> InteractionResult:
        resolved = await self.resolver.resolve(self.locators[field], timeout_ms=LOGIN_TIMEOUT_MS, require_enabled=True)
        if not resolved.succeeded:
            return resolved
        result = await self.executor.clear(resolved.value)
        if result.succeeded:
            result = await self.executor.type(resolved.value, text)
        if not result.succeeded:
            return result
        button = await self.resolver.resolve(self.locators[submit], timeout_ms=SHORT_TIMEOUT_MS, require_enabled=True)
        if not button.succeeded:
            return button
        return await self.executor.click(button.value)


class InterstitialResolver:
    """Drains popups, the region prompt, sign-in and OTP before control returns to the caller.

    Runs as a bounded state machine: each iteration observes the session state and
    applies one transition, so a sign-in that leads back to the region prompt is handled
    by the next iteration rather than by calling itself again.
    """

    def __init__(self, resolver: LocatorResolver, executor: ActionExecutor, detector: SessionStateDetector,
                 locators: Mapping[str, Locator], target: TargetConfig, credentials: Credentials,
                 max_transitions: int = MAX_INTERSTITIAL_TRANSITIONS):
        self.resolver = resolver
        self.executor = executor
        self.detector = detector
        self.locators = locators
        self.target = target
        self.credentials = credentials
        self.max_transitions = max_transitions

    async def resolve(self) -> InteractionResult:
        await self.dismiss_popups()
        region_attempts = 0
        for transition in range(self.max_transitions):
            state = await self.detector.observe()
            logger.debug(f"Interstitial transition {transition + 1}: {state.value}")
            if state in (SessionState.READY, SessionState.ANONYMOUS):
                return InteractionResult.ok(f"session {state.value}", state)
            if state is SessionState.ADDRESS_PROMPT_PENDING:
                if region_attempts >= MAX_REGION_ATTEMPTS:
                    logger.warning(f"Region still not {self.target.postal_code} after {region_attempts} attempts, continuing")
                    return InteractionResult.ok("region unconfirmed", state)
                region_attempts += 1
                result = await self.submit_region()
            else:
                logger.info("Sign-in required, starting authentication")
                result = await self._authentication().run()
            if not result.succeeded:
                return result
        return InteractionResult.fail(
            FailureKind.TIMEOUT, f"Page did not settle after {self.max_transitions} interstitial transitions")

    def _authentication(self) -> AuthenticationFlow:
        return AuthenticationFlow(self.resolver, self.executor, self.detector, self.locators, self.credentials)

    async def dismiss_popups(self) -> int:
        """Best effort: click every visible dismiss control once. Absence is fine."""
        dismissed = 0
        for strategy in self.locators["popup_dismiss"].strategies:
            single = Locator(f"popup_dismiss[{strategy.expression}]", (strategy,))
            found = await self.resolver.resolve(single, timeout_ms=0)
            if not found.succeeded:
                continue
            if (await self.executor.click(found.value)).succeeded:
                dismissed += 1
                logger.info(f"Dismissed popup using: {strategy.expression}")
        return dismissed

    async def submit_region(self) -> InteractionResult:
        logger.info(f"Setting postal code {self.target.postal_code}")
        steps = (
            ("location_slot", None),
            ("zip_input", self.target.postal_code),
            ("zip_apply", None),
        )
        for name, text in steps:
            resolved = await self.resolver.resolve(self.locators[name], require_enabled=text is not None)
            if not resolved.succeeded:
                # no editor on this page variant
                logger.info(f"Region editor unavailable: {resolved.diagnostic}")
                return InteractionResult.ok("region editor unavailable")
            if text is None:
                result = await self.executor.click(resolved.value)
            else:
                result = await self.executor.clear(resolved.value)
                if result.succeeded:
                    result = await self.executor.type(resolved.value, text)
            if not result.succeeded:
                return result

        await poll_until(self._region_submitted, REGION_SUBMIT_POLICY, "region submission settled")
        if await self.detector.observe() is SessionState.LOGIN_REQUIRED:
            logger.info("Region submission redirected to sign-in")
            return InteractionResult.ok("redirected to sign-in")

        confirmed = await self.confirm_region_dialog()
        if not confirmed.succeeded:
            await self._confirm_with_fallbacks()

        settled = await poll_until(self._region_reflected, REGION_SETTLE_POLICY, "location reflects target")
        logger.info("Postal code set" if settled else "Postal code submitted, location not yet updated")
        return InteractionResult.ok("region submitted")

    async def confirm_region_dialog(self) -> InteractionResult:
        """Find the dialog container, then the confirm control inside it.

        The container is looked up again whenever the control goes stale, so a dialog
        re-rendered behind another one is never confused with it.
        """
        container = await self.resolver.resolve(self.locators["region_dialog"], timeout_ms=DIALOG_TIMEOUT_MS)
        if not container.succeeded:
            return container
        for attempt in range(1, DIALOG_CONFIRM_ATTEMPTS + 1):
            confirm = await self.resolver.resolve(
                self.locators["region_dialog_confirm"], scope=container.value.handle, timeout_ms=SHORT_TIMEOUT_MS)
            if confirm.succeeded:
                try:
                    await confirm.value.handle.evaluate(FORCE_CLICK_JS)
                    logger.info("Confirmed region inside dialog")
                    return InteractionResult.ok("region dialog confirmed")
                except PlaywrightError as e:
                    if not is_stale(e):
                        return InteractionResult.fail(FailureKind.NOT_FOUND, f"Dialog confirm failed: {e}")
            logger.info(f"Dialog confirm stale or missing, retrying {attempt}/{DIALOG_CONFIRM_ATTEMPTS}")
            container = await self.resolver.resolve(self.locators["region_dialog"], timeout_ms=SHORT_TIMEOUT_MS)
            if not container.succeeded:
                return container
        return InteractionResult.fail(
            FailureKind.STALE_HANDLE, f"Dialog confirm not clicked after {DIALOG_CONFIRM_ATTEMPTS} attempts")

    async def _confirm_with_fallbacks(self) -> bool:
        for name in ("region_confirm_fallback", "region_done_fallback"):
            found = await self.resolver.resolve(self.locators[name], timeout_ms=SHORT_TIMEOUT_MS)
            if not found.succeeded:
                continue
            if (await self.executor.force_click(found.value)).succeeded:
                logger.info(f"Confirmed region using fallback {name}")
                return True
        logger.info("No region confirm control found, region may already be acceptable")
        return False

    async def _region_submitted(self) -> bool:
        if await self.detector.observe() is SessionState.LOGIN_REQUIRED:
            return True
        return await self.resolver.is_present(self.locators["region_dialog"])

    async def _region_reflected(self) -> bool:
        text = await self.detector.location_text()
        return text is None or self.target.reflected_by(text)
