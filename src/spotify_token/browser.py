"""Headless browser client that captures the web player's anonymous token.

The web player requests its own token while booting. Rather than calling the
token endpoint directly, we load the player in Chromium (patchright) and read
the body of that request once it finishes. One Chromium process is kept
alive across fetches; each fetch uses a fresh page.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from .config import BROWSER_PATH, TARGET_URL, TOKEN_DEADLINE_SECONDS, TOKEN_PATH, USER_AGENT
from .errors import (
    FetchTimeoutError,
    LaunchError,
    NavigationError,
    PageError,
    ParseError,
    ResponseError,
    TokenFetchError,
)
from .models import AccessCredential

if TYPE_CHECKING:
    from patchright.async_api import Browser, Page, Playwright, Request, Route

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--disable-gpu",
    "--disable-dev-shm-usage",
    "--disable-setuid-sandbox",
    "--no-sandbox",
    "--no-zygote",
    "--single-process",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
]

# Traffic shaping
_BLOCKED_RESOURCE_TYPES = frozenset({"image", "stylesheet", "font", "media", "websocket", "other"})
_BLOCKED_URL_FRAGMENTS = ("google-analytics", "doubleclick.net", "googletagmanager.com")
_BLOCKED_URL_PREFIXES = (
    "https://open.spotifycdn.com/cdn/images/",
    "https://encore.scdn.co/fonts/",
)


def should_block(resource_type: str, url: str) -> bool:
    """Return True for requests the token capture does not need."""
    if resource_type in _BLOCKED_RESOURCE_TYPES:
        return True
    if any(frag in url for frag in _BLOCKED_URL_FRAGMENTS):
        return True
    return url.startswith(_BLOCKED_URL_PREFIXES)


async def _shape_traffic(route: Route) -> None:
    request = route.request
    if should_block(request.resource_type, request.url):
        await route.abort()
    else:
        await route.continue_()


def _settle(
    outcome: asyncio.Future,
    result: AccessCredential | None = None,
    error: TokenFetchError | None = None,
) -> bool:
    """Resolve ``outcome`` once. Later calls are ignored and return False."""
    if outcome.done():
        return False
    if error is not None:
        outcome.set_exception(error)
    else:
        outcome.set_result(result)
    return True


class BrowserAutomationClient:
    """Owns the shared Chromium process and runs one capture per ``fetch``."""

    def __init__(
        self,
        *,
        executable_path: str | None = BROWSER_PATH,
        user_agent: str | None = USER_AGENT,
        deadline_seconds: float = TOKEN_DEADLINE_SECONDS,
        target_url: str = TARGET_URL,
        token_path: str = TOKEN_PATH,
    ) -> None:
        self.executable_path = executable_path
        self.user_agent = user_agent
        self.deadline_seconds = deadline_seconds
        self.target_url = target_url
        self.token_path = token_path
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._launch_lock = asyncio.Lock()

    @property
    def engine_running(self) -> bool:
        return self._browser is not None

    async def fetch(self) -> AccessCredential:
        """Load the web player in a new page and return the token it obtains."""
        browser = await self._ensure_browser()
        page_options: dict[str, Any] = {}
        if self.user_agent:
            page_options["user_agent"] = self.user_agent
        try:
            page = await browser.new_page(**page_options)
        except Exception as exc:
            logger.error("Failed to open new page: %s", exc)
            await self._discard_browser()
            raise PageError(f"Failed to open new page: {exc}") from exc

        try:
            return await self._capture_token(page)
        finally:
            await self._close_page(page)

    async def close(self) -> None:
        """Shut down Chromium and the driver. The next fetch relaunches."""
        async with self._launch_lock:
            await self._discard_browser()
            await self._stop_driver()

    async def _ensure_browser(self) -> Browser:
        async with self._launch_lock:
            if self._browser is not None:
                try:
                    connected = self._browser.is_connected()
                except Exception:
                    connected = False
                if connected:
                    return self._browser
                logger.warning("Browser disconnected — relaunching")
                await self._discard_browser()

            launch_options: dict[str, Any] = {"headless": True, "args": LAUNCH_ARGS}
            if self.executable_path:
                launch_options["executable_path"] = self.executable_path
            try:
                if self._playwright is None:
                    from patchright.async_api import async_playwright

                    self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(**launch_options)
            except Exception as exc:
                logger.exception("Failed to spawn browser")
                self._browser = None
                await self._stop_driver()
                raise LaunchError(f"Failed to launch browser: {exc}") from exc

            logger.info("Browser launched (%s)", self.executable_path or "bundled chromium")
            return self._browser

    async def _capture_token(self, page: Page) -> AccessCredential:
        outcome: asyncio.Future = asyncio.get_running_loop().create_future()
        seen_token_request = False

        async def on_request_finished(request: Request) -> None:
            nonlocal seen_token_request
            if self.token_path not in request.url or outcome.done():
                return
            seen_token_request = True
            try:
                credential = await self._read_token_response(request)
            except TokenFetchError as exc:
                _settle(outcome, error=exc)
            else:
                _settle(outcome, result=credential)

        async def navigate() -> None:
            try:
                await page.goto(self.target_url)
            except Exception as exc:
                # A token response already in flight wins over a late nav error.
                if not seen_token_request and not outcome.done():
                    logger.error("Navigation failed: %s", exc)
                    _settle(outcome, error=NavigationError(f"Failed to goto URL: {exc}"))

        try:
            await page.route("**/*", _shape_traffic)
        except Exception as exc:
            logger.error("Failed to install request routing: %s", exc)
            raise PageError(f"Failed to install request routing: {exc}") from exc
        page.on("requestfinished", on_request_finished)
        navigation = asyncio.create_task(navigate())
        try:
            return await asyncio.wait_for(outcome, timeout=self.deadline_seconds)
        except asyncio.TimeoutError:
            if not seen_token_request:
                logger.warning(
                    "Deadline exceeded without processing access token request, did the endpoint change?"
                )
            raise FetchTimeoutError(
                f"Token fetch exceeded deadline of {self.deadline_seconds:g}s"
            ) from None
        finally:
            page.remove_listener("requestfinished", on_request_finished)
            if not navigation.done():
                navigation.cancel()

    async def _read_token_response(self, request: Request) -> AccessCredential:
        try:
            response = await request.response()
        except Exception:
            response = None
        if response is None or not response.ok:
            status = getattr(response, "status", None)
            logger.error("Invalid response from token endpoint (status %s)", status)
            raise ResponseError(f"Invalid response from Spotify (status {status})")

        try:
            body = await response.text()
        except Exception as exc:
            logger.error("Failed to read token response body: %s", exc)
            raise ResponseError(f"Failed to read token response body: {exc}") from exc

        try:
            payload = json.loads(body)
        except ValueError as exc:
            logger.error("Failed to parse response JSON")
            raise ParseError("Failed to parse response JSON") from exc
        if not isinstance(payload, dict):
            raise ParseError("Token response is not a JSON object")

        try:
            return AccessCredential.from_payload(payload)
        except ValidationError as exc:
            logger.error("Token response missing required fields")
            raise ParseError(f"Token response missing required fields: {exc}") from exc

    async def _close_page(self, page: Page) -> None:
        try:
            await page.close()
        except Exception:
            logger.debug("Failed to close page", exc_info=True)

    async def _discard_browser(self) -> None:
        browser, self._browser = self._browser, None
        if browser is None:
            return
        try:
            await browser.close()
        except Exception:
            logger.debug("Failed to close browser", exc_info=True)

    async def _stop_driver(self) -> None:
        playwright, self._playwright = self._playwright, None
        if playwright is None:
            return
        try:
            await playwright.stop()
        except Exception:
            logger.debug("Failed to stop playwright driver", exc_info=True)
