"""
Tests for interstitial draining, region prompt and sign-in/OTP flow
"""
import pytest
from unittest.mock import AsyncMock, Mock, patch

from playwright.async_api import Error as PlaywrightError

from storefront.interstitials import AuthenticationFlow, AuthStage, InterstitialResolver
from storefront.models import (
    Credentials, FailureKind, InteractionResult, ResolvedElement, SessionState,
)
from storefront.resolver import LocatorResolver
from storefront.state import SessionStateDetector

CREDENTIALS = Credentials(identifier="shopper@example.com", secret="hunter2")
HOME_HTML = "<html><body><div id='nav-main'>Today's Deals</div></body></html>"


def ok_executor():
    executor = Mock()
    for name in ("click", "force_click", "clear", "type"):
        setattr(executor, name, AsyncMock(return_value=InteractionResult.ok(name)))
    return executor


def detector_returning(*states, location="Deliver to 90210"):
    detector = Mock()
    if len(states) == 1:
        detector.observe = AsyncMock(return_value=states[0])
    else:
        detector.observe = AsyncMock(side_effect=list(states))
    detector.location_text = AsyncMock(return_value=location)
    return detector


def missing_resolver():
    resolver = Mock()
    resolver.resolve = AsyncMock(return_value=InteractionResult.fail(FailureKind.NOT_FOUND, "absent"))
    resolver.is_present = AsyncMock(return_value=False)
    return resolver


class TestInterstitialResolver:
    """InterstitialResolver.resolve"""

    @pytest.mark.asyncio
    async def test_ready_page_is_left_alone(self, make_page, make_element, selector, locators, target, no_sleep):
        """Resolving twice on a settled page performs no clicks"""
        slot = make_element(text="Deliver to Jane\nBeverly Hills 90210")
        page = make_page(content=HOME_HTML, elements={selector("location_slot"): [slot]})
        executor = ok_executor()
        interstitials = InterstitialResolver(
            LocatorResolver(page), executor, SessionStateDetector(page, target), locators, target, CREDENTIALS)

        first = await interstitials.resolve()
        second = await interstitials.resolve()

        assert first.succeeded and second.succeeded
        assert first.value is SessionState.READY
        assert second.value is SessionState.READY
        executor.click.assert_not_awaited()
        executor.type.assert_not_awaited()
        page.goto.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_popups_dismissed_once_each(self, make_page, make_element, selector, locators, target, no_sleep):
        popup = make_element()
        page = make_page(content=HOME_HTML, elements={selector("popup_dismiss", 0): [popup]})
        executor = ok_executor()
        interstitials = InterstitialResolver(
            LocatorResolver(page), executor, SessionStateDetector(page, target), locators, target, CREDENTIALS)

        assert await interstitials.dismiss_popups() == 1
        assert executor.click.await_args.args[0].handle is popup

    @pytest.mark.asyncio
    async def test_login_redirect_triggers_authentication(self, locators, target, no_sleep):
        detector = detector_returning(SessionState.LOGIN_REQUIRED, SessionState.READY)
        interstitials = InterstitialResolver(missing_resolver(), ok_executor(), detector, locators, target, CREDENTIALS)
        flow = Mock()
        flow.run = AsyncMock(return_value=InteractionResult.ok("signed in"))

        with patch.object(interstitials, "_authentication", return_value=flow):
            result = await interstitials.resolve()

        assert result.succeeded
        assert result.value is SessionState.READY
        flow.run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_authentication_failure_returned(self, locators, target, no_sleep):
        detector = detector_returning(SessionState.OTP_REQUIRED)
        interstitials = InterstitialResolver(missing_resolver(), ok_executor(), detector, locators, target, CREDENTIALS)
        flow = Mock()
        flow.run = AsyncMock(return_value=InteractionResult.fail(FailureKind.OTP_TIMEOUT, "no code"))

        with patch.object(interstitials, "_authentication", return_value=flow):
            result = await interstitials.resolve()

        assert result.failure is FailureKind.OTP_TIMEOUT

    @pytest.mark.asyncio
    async def test_region_prompt_attempted_twice_then_continues(self, locators, target, no_sleep):
        detector = detector_returning(SessionState.ADDRESS_PROMPT_PENDING)
        interstitials = InterstitialResolver(missing_resolver(), ok_executor(), detector, locators, target, CREDENTIALS)

        with patch.object(interstitials, "submit_region", AsyncMock(return_value=InteractionResult.ok("submitted"))) as submit:
            result = await interstitials.resolve()

        assert result.succeeded
        assert result.diagnostic == "region unconfirmed"
        assert submit.await_count == 2

    @pytest.mark.asyncio
    async def test_sign_in_then_region_handled_without_recursion(self, locators, target, no_sleep):
        detector = detector_returning(
            SessionState.LOGIN_REQUIRED, SessionState.ADDRESS_PROMPT_PENDING, SessionState.READY)
        interstitials = InterstitialResolver(missing_resolver(), ok_executor(), detector, locators, target, CREDENTIALS)
        flow = Mock()
        flow.run = AsyncMock(return_value=InteractionResult.ok("signed in"))

        with patch.object(interstitials, "_authentication", return_value=flow), \
                patch.object(interstitials, "submit_region", AsyncMock(return_value=InteractionResult.ok("set"))) as submit:
            result = await interstitials.resolve()

        assert result.value is SessionState.READY
        submit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_transition_budget(self, locators, target, no_sleep):
        detector = detector_returning(SessionState.LOGIN_REQUIRED)
        interstitials = InterstitialResolver(
            missing_resolver(), ok_executor(), detector, locators, target, CREDENTIALS, max_transitions=3)
        flow = Mock()
        flow.run = AsyncMock(return_value=InteractionResult.ok("signed in"))

        with patch.object(interstitials, "_authentication", return_value=flow):
            result = await interstitials.resolve()

        assert result.failure is FailureKind.TIMEOUT
        assert flow.run.await_count == 3


class TestRegionPrompt:
    """InterstitialResolver.submit_region / confirm_region_dialog"""

    @pytest.mark.asyncio
    async def test_editor_unavailable(self, locators, target, no_sleep):
        detector = detector_returning(SessionState.ADDRESS_PROMPT_PENDING)
        executor = ok_executor()
        interstitials = InterstitialResolver(missing_resolver(), executor, detector, locators, target, CREDENTIALS)

        result = await interstitials.submit_region()

        assert result.succeeded
        executor.type.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_postal_code_typed(self, make_element, locators, target, no_sleep):
        resolver = Mock()
        resolver.resolve = AsyncMock(
            side_effect=lambda locator, *a, **kw: InteractionResult.ok("found", ResolvedElement(make_element(), locator)))
        resolver.is_present = AsyncMock(return_value=True)
        detector = detector_returning(SessionState.ADDRESS_PROMPT_PENDING)
        executor = ok_executor()
        interstitials = InterstitialResolver(resolver, executor, detector, locators, target, CREDENTIALS)

        with patch.object(interstitials, "confirm_region_dialog",
                          AsyncMock(return_value=InteractionResult.ok("confirmed"))) as confirm:
            result = await interstitials.submit_region()

        assert result.succeeded
        executor.type.assert_awaited_once()
        assert executor.type.await_args.args[1] == "90210"
        confirm.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_dialog_confirm_rescoped_after_stale(self, make_element, locators, target, no_sleep):
        containers = [make_element(), make_element()]
        stale_confirm, fresh_confirm = make_element(), make_element()
        stale_confirm.evaluate.side_effect = PlaywrightError("Element is not attached to the DOM")
        confirms = iter([stale_confirm, fresh_confirm])
        dialogs = iter(containers)
        scopes = []

        async def resolve(locator, scope=None, timeout_ms=None, require_enabled=False):
            if locator.name == "region_dialog":
                return InteractionResult.ok("dialog", ResolvedElement(next(dialogs), locator))
            scopes.append(scope)
            return InteractionResult.ok("confirm", ResolvedElement(next(confirms), locator, scope))

        resolver = Mock()
        resolver.resolve = AsyncMock(side_effect=resolve)
        interstitials = InterstitialResolver(
            resolver, ok_executor(), detector_returning(SessionState.READY), locators, target, CREDENTIALS)

        result = await interstitials.confirm_region_dialog()

        assert result.succeeded
        assert scopes == containers
        fresh_confirm.evaluate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_dialog(self, locators, target, no_sleep):
        interstitials = InterstitialResolver(
            missing_resolver(), ok_executor(), detector_returning(SessionState.READY), locators, target, CREDENTIALS)

        result = await interstitials.confirm_region_dialog()

        assert result.failure is FailureKind.NOT_FOUND


class TestAuthenticationFlow:
    """AuthenticationFlow.run / await_otp"""

    @pytest.fixture
    def found_resolver(self, make_element):
        resolver = Mock()
        resolver.resolve = AsyncMock(
            side_effect=lambda locator, *a, **kw: InteractionResult.ok("found", ResolvedElement(make_element(), locator)))
        return resolver

    @pytest.mark.asyncio
    async def test_otp_gives_up_after_sixty_checks(self, locators, no_sleep):
        detector = detector_returning(SessionState.OTP_REQUIRED)
        flow = AuthenticationFlow(missing_resolver(), ok_executor(), detector, locators, CREDENTIALS)

        result = await flow.await_otp()

        assert result.failure is FailureKind.OTP_TIMEOUT
        assert detector.observe.await_count == 60
        assert no_sleep.await_count == 59
        no_sleep.assert_awaited_with(1.0)

    @pytest.mark.asyncio
    async def test_otp_cleared(self, locators, no_sleep):
        detector = detector_returning(SessionState.OTP_REQUIRED, SessionState.OTP_REQUIRED, SessionState.READY)
        flow = AuthenticationFlow(missing_resolver(), ok_executor(), detector, locators, CREDENTIALS)

        result = await flow.await_otp()

        assert result.succeeded
        assert flow.stage is AuthStage.DONE

    @pytest.mark.asyncio
    async def test_full_sign_in_ending_in_otp_timeout(self, found_resolver, locators, no_sleep):
        # initial check, sign-in settle, post-submit check, then 60 OTP checks
        detector = detector_returning(SessionState.LOGIN_REQUIRED, *[SessionState.OTP_REQUIRED] * 62)
        executor = ok_executor()
        flow = AuthenticationFlow(found_resolver, executor, detector, locators, CREDENTIALS)

        result = await flow.run()

        assert result.failure is FailureKind.OTP_TIMEOUT
        assert detector.observe.await_count == 63
        typed = [call.args[1] for call in executor.type.await_args_list]
        assert typed == ["shopper@example.com", "hunter2"]
        assert flow.stage is AuthStage.AWAITING_OTP

    @pytest.mark.asyncio
    async def test_sign_in_without_otp(self, found_resolver, locators, no_sleep):
        detector = detector_returning(SessionState.LOGIN_REQUIRED, SessionState.READY, SessionState.READY)
        flow = AuthenticationFlow(found_resolver, ok_executor(), detector, locators, CREDENTIALS)

        result = await flow.run()

        assert result.succeeded
        assert flow.stage is AuthStage.DONE

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, found_resolver, locators, no_sleep):
        detector = detector_returning(SessionState.LOGIN_REQUIRED)
        flow = AuthenticationFlow(found_resolver, ok_executor(), detector, locators, CREDENTIALS)

        result = await flow.run()

        assert result.failure is FailureKind.AUTHENTICATION_REQUIRED

    @pytest.mark.asyncio
    async def test_missing_credentials(self, locators, no_sleep):
        detector = detector_returning(SessionState.LOGIN_REQUIRED)
        executor = ok_executor()
        flow = AuthenticationFlow(missing_resolver(), executor, detector, locators, Credentials(identifier="only-id"))

        result = await flow.run()

        assert result.failure is FailureKind.AUTHENTICATION_REQUIRED
        executor.type.assert_not_awaited()
        detector.observe.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_identifier_field_missing(self, locators, no_sleep):
        flow = AuthenticationFlow(
            missing_resolver(), ok_executor(), detector_returning(SessionState.LOGIN_REQUIRED), locators, CREDENTIALS)

        result = await flow.run()

        assert result.failure is FailureKind.NOT_FOUND
        assert flow.stage is AuthStage.AWAITING_IDENTIFIER
