"""Lifecycle of the single browser session used to reach the Vahan portal."""

import asyncio
from enum import Enum
from typing import Optional

import structlog
from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    async_playwright,
)

from vahan_extractor.core.config import BrowserConfig

logger = structlog.get_logger()


class SessionUnavailable(RuntimeError):
    """The browser session could not be created or reached."""


class AuthState(str, Enum):
    """Result of an authentication probe. UNKNOWN counts as not authenticated."""

    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"
    UNKNOWN = "unknown"


class BrowserSession:
    """Owns the one Playwright browser/context/page process-wide.

    Launch and teardown are serialized by a lock. Knows nothing about jobs.
    """

    def __init__(self, config: BrowserConfig):
        self.config = config
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._lock = asyncio.Lock()

    @property
    def page(self) -> Optional[Page]:
        return self._page

    def is_live(self) -> bool:
        """Cheap liveness probe. Never raises."""
        try:
            return (
                self._browser is not None
                and self._browser.is_connected()
                and self._page is not None
                and not self._page.is_closed()
            )
        except PlaywrightError:
            return False

    async def acquire(self) -> Page:
        """Return the live page, launching a fresh browser if needed.

        Raises:
            SessionUnavailable: If the browser cannot be launched or the portal
                entry point cannot be reached
        """
        async with self._lock:
            if self.is_live():
                return self._page

            await self._teardown()

            logger.info("browser_launching", headless=self.config.headless)
            try:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.config.headless,
                    args=self.config.launch_args,
                )
                self._context = await self._browser.new_context()
                self._page = await self._context.new_page()
                await self._page.goto(self.config.home_url, wait_until="domcontentloaded")
            except PlaywrightError as e:
                logger.error("browser_launch_failed", error=str(e))
                await self._teardown()
                raise SessionUnavailable(f"Failed to launch browser: {e}") from e

            logger.info("browser_launched", url=self.config.home_url)
            return self._page

    async def probe_auth(self) -> AuthState:
        """Best-effort check whether the portal session is logged in.

        Inspects the current location and page text first; when those are
        ambiguous, re-navigates to the entry point and checks for a login
        redirect. Probe errors yield UNKNOWN instead of raising.
        """
        page = self._page
        if page is None or page.is_closed():
            return AuthState.UNAUTHENTICATED

        try:
            if "login" in page.url.lower():
                return AuthState.UNAUTHENTICATED

            content = (await page.content()).lower()
            if "logout" in content or "sign out" in content:
                return AuthState.AUTHENTICATED

            await page.goto(
                self.config.home_url,
                wait_until="domcontentloaded",
                timeout=10_000,
            )
            await page.wait_for_timeout(1000)
            if "login" in page.url.lower():
                return AuthState.UNAUTHENTICATED
            return AuthState.AUTHENTICATED
        except Exception as e:
            logger.warning("auth_probe_failed", error=str(e))
            return AuthState.UNKNOWN

    async def check_authenticated(self) -> bool:
        """True only when the probe positively confirms a logged-in session."""
        return await self.probe_auth() is AuthState.AUTHENTICATED

    async def navigate_home(self) -> None:
        """Navigate the live page back to the portal entry point.

        Raises:
            SessionUnavailable: If there is no live page
        """
        if not self.is_live():
            raise SessionUnavailable("Browser is not open")

        await self._page.goto(
            self.config.home_url,
            wait_until="domcontentloaded",
            timeout=self.config.navigation_timeout * 1000,
        )
        await self._page.wait_for_timeout(1000)

    async def capture_screenshot(self) -> bytes:
        """Capture a PNG of the current page.

        Raises:
            SessionUnavailable: If there is no live page
        """
        if not self.is_live():
            raise SessionUnavailable("Browser is not open")
        return await self._page.screenshot(type="png")

    async def release(self) -> None:
        """Close the browser. Teardown errors are logged, never raised."""
        async with self._lock:
            await self._teardown()
        logger.info("browser_closed")

    async def _teardown(self) -> None:
        # Each close is independent; references are cleared regardless of outcome.
        context, browser, playwright = self._context, self._browser, self._playwright
        self._context = None
        self._browser = None
        self._playwright = None
        self._page = None

        if context is not None:
            try:
                await context.close()
            except Exception as e:
                logger.warning("context_close_failed", error=str(e))
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.warning("browser_close_failed", error=str(e))
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as e:
                logger.warning("playwright_stop_failed", error=str(e))
