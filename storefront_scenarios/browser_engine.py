import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Protocol

from playwright.async_api import Browser, BrowserContext, ElementHandle, Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import Settings
from .errors import ElementNotFound, NavigationError, NavigationTimeout

logger = logging.getLogger(__name__)

DEVICE_PROFILES: Dict[str, Dict[str, Any]] = {
    "desktop": {"viewport": {"width": 1280, "height": 720}},
    "mobile": {
        "viewport": {"width": 375, "height": 667},
        "user_agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 14_0 like Mac OS X) AppleWebKit/605.1.15"
    },
    "tablet": {
        "viewport": {"width": 768, "height": 1024},
        "user_agent": "Mozilla/5.0 (iPad; CPU OS 14_0 like Mac OS X) AppleWebKit/605.1.15"
    },
}


class BrowserDriver(Protocol):
    """Capabilities the scenario runner needs from a browser session"""

    session_id: str

    async def navigate(self, url: str) -> None: ...

    async def fill(self, selector: str, value: str) -> None: ...

    async def check(self, selector: str) -> None: ...

    async def click(self, selector: str) -> None: ...

    async def select_option(self, selector: str, value: str) -> None: ...

    async def wait_for(self, selector: str, timeout_ms: int) -> Any: ...

    async def wait_for_url_change(self, from_url: str, timeout_ms: int) -> str: ...

    async def locator_text(self, selector: str) -> str: ...

    async def locator_texts(self, selector: str) -> List[str]: ...

    async def locator_visible(self, selector: str) -> bool: ...

    async def visible_count(self, selector: str) -> int: ...

    def current_url(self) -> str: ...

    async def cookies(self) -> List[Dict[str, Any]]: ...


class BrowserSession:
    """One isolated browser context and page, owned by a single scenario"""

    def __init__(self, session_id: str, context: BrowserContext, page: Page, timeout_ms: int = 5000):
        self.session_id = session_id
        self.context = context
        self.page = page
        self.timeout_ms = timeout_ms

    async def navigate(self, url: str) -> None:
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(f"Timed out loading {url}: {e.message}", url=url) from e
        except PlaywrightError as e:
            raise NavigationError(f"Could not load {url}: {e.message}", url=url) from e

    async def fill(self, selector: str, value: str) -> None:
        try:
            await self.page.fill(selector, value, timeout=self.timeout_ms)
        except PlaywrightTimeoutError as e:
            raise self._not_found(selector, e) from e

    async def check(self, selector: str) -> None:
        try:
            await self.page.check(selector, timeout=self.timeout_ms)
        except PlaywrightTimeoutError as e:
            raise self._not_found(selector, e) from e

    async def click(self, selector: str) -> None:
        try:
            await self.page.click(selector, timeout=self.timeout_ms)
        except PlaywrightTimeoutError as e:
            raise self._not_found(selector, e) from e

    async def select_option(self, selector: str, value: str) -> None:
        try:
            await self.page.select_option(selector, value, timeout=self.timeout_ms)
        except PlaywrightTimeoutError as e:
            raise self._not_found(selector, e) from e

    async def wait_for(self, selector: str, timeout_ms: int) -> Optional[ElementHandle]:
        try:
            return await self.page.wait_for_selector(selector, state="visible", timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise self._not_found(selector, e) from e

    async def wait_for_url_change(self, from_url: str, timeout_ms: int) -> str:
        try:
            await self.page.wait_for_url(lambda url: url != from_url, timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(
                f"URL did not change from {from_url} within {timeout_ms}ms",
                url=from_url
            ) from e
        return self.page.url

    async def locator_text(self, selector: str) -> str:
        try:
            return await self.page.locator(selector).first.inner_text(timeout=self.timeout_ms)
        except PlaywrightTimeoutError as e:
            raise self._not_found(selector, e) from e

    async def locator_texts(self, selector: str) -> List[str]:
        return await self.page.locator(selector).all_inner_texts()

    async def locator_visible(self, selector: str) -> bool:
        return await self.page.locator(selector).first.is_visible()

    async def visible_count(self, selector: str) -> int:
        locator = self.page.locator(selector)
        count = 0
        for index in range(await locator.count()):
            if await locator.nth(index).is_visible():
                count += 1
        return count

    def current_url(self) -> str:
        return self.page.url

    async def cookies(self) -> List[Dict[str, Any]]:
        return await self.context.cookies()

    async def close(self):
        await self.context.close()

    def _not_found(self, selector: str, error: PlaywrightTimeoutError) -> ElementNotFound:
        return ElementNotFound(f"{selector} not found: {error.message}", url=self.page.url)


class BrowserEngine:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings.from_env()
        self.playwright = None
        self.browser: Optional[Browser] = None
        self.sessions: Dict[str, BrowserSession] = {}

    async def initialize(self):
        """Initialize Playwright and browser"""
        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(
            headless=self.settings.headless,
            args=['--no-sandbox', '--disable-setuid-sandbox']
        )

    async def new_session(self, session_id: Optional[str] = None, device: str = "desktop") -> BrowserSession:
        """Open an isolated context (cookies, storage) for one scenario"""
        if self.browser is None:
            raise RuntimeError("BrowserEngine.initialize() has not been awaited")

        session_id = session_id or uuid.uuid4().hex[:12]
        if session_id in self.sessions:
            raise ValueError(f"Session {session_id} is already owned by another scenario")
        if device not in DEVICE_PROFILES:
            raise ValueError(f"Unknown device profile: {device}")

        context = await self.browser.new_context(base_url=self.settings.base_url, **DEVICE_PROFILES[device])
        page = await context.new_page()

        page.on("console", lambda msg: logger.debug("[%s] console: %s", session_id, msg.text))
        page.on("pageerror", lambda err: logger.warning("[%s] page error: %s", session_id, err))

        session = BrowserSession(session_id, context, page, timeout_ms=self.settings.navigation_timeout_ms)
        self.sessions[session_id] = session
        logger.info("Opened %s session %s", device, session_id)
        return session

    async def close_session(self, session_id: str):
        session = self.sessions.pop(session_id, None)
        if session is not None:
            await session.close()
            logger.info("Closed session %s", session_id)

    @asynccontextmanager
    async def session(self, session_id: Optional[str] = None, device: str = "desktop"):
        browser_session = await self.new_session(session_id, device)
        try:
            yield browser_session
        finally:
            await self.close_session(browser_session.session_id)

    async def cleanup(self):
        """Clean up browser resources"""
        for session_id in list(self.sessions):
            await self.close_session(session_id)
        if self.browser:
            await self.browser.close()
        if self.playwright:
            await self.playwright.stop()
