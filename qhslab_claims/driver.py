"""Automation driver interface and its Selenium/Chrome implementation.

The processors never touch Selenium directly. They talk to an
``AutomationDriver`` so the whole engine can be exercised against a
recording fake in tests.
"""

from __future__ import annotations

import abc
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Optional

from selenium import webdriver
from selenium.common.exceptions import (
    ElementClickInterceptedException,
    InvalidSessionIdException,
    NoSuchWindowException,
    StaleElementReferenceException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.common.by import By
from selenium.webdriver.common.keys import Keys
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait
from urllib3.exceptions import MaxRetryError, ProtocolError
from webdriver_manager.chrome import ChromeDriverManager

from .config import BotConfig
from .errors import ActionFailed, SessionLost

LOGGER = logging.getLogger(__name__)

Handle = Any

# Raised by the HTTP layer when chromedriver itself is gone (crashed or killed)
_UNREACHABLE = (MaxRetryError, ProtocolError, ConnectionError)

LOCATOR_KINDS = ("css", "xpath", "id", "column_filter")


@dataclass(frozen=True)
class Locator:
    """How to find a control. ``column_filter`` takes a header regex as value."""

    kind: str
    value: str
    index: int = 0

    def __post_init__(self) -> None:
        if self.kind not in LOCATOR_KINDS:
            raise ValueError(f"Unknown locator kind: {self.kind}")

    def __str__(self) -> str:
        suffix = f"[{self.index}]" if self.index else ""
        return f"{self.kind}={self.value}{suffix}"


class AutomationDriver(abc.ABC):
    """Operations the engine needs from a live UI session."""

    @abc.abstractmethod
    def navigate(self, url: str) -> None: ...

    @abc.abstractmethod
    def locate(self, locator: Locator, within: Optional[Handle] = None, timeout: float = 0.0) -> Optional[Handle]: ...

    @abc.abstractmethod
    def query(
        self,
        locator: Locator,
        predicate: Optional[Callable[[Handle], bool]] = None,
        within: Optional[Handle] = None,
    ) -> List[Handle]: ...

    @abc.abstractmethod
    def click(self, handle: Handle) -> None: ...

    @abc.abstractmethod
    def fill(self, handle: Handle, text: str) -> None: ...

    @abc.abstractmethod
    def clear(self, handle: Handle) -> None: ...

    @abc.abstractmethod
    def press(self, handle: Optional[Handle], key: str) -> None: ...

    @abc.abstractmethod
    def text_of(self, handle: Handle) -> str: ...

    @abc.abstractmethod
    def wait_visible(self, handle: Handle, timeout: float) -> bool: ...

    @abc.abstractmethod
    def is_editable(self, handle: Handle) -> bool: ...

    @abc.abstractmethod
    def unlock(self, handle: Handle) -> None: ...

    @abc.abstractmethod
    def is_checked(self, handle: Handle) -> bool: ...

    @abc.abstractmethod
    def column_header_of(self, handle: Handle) -> str: ...

    @abc.abstractmethod
    def scroll_into_view(self, handle: Handle) -> None: ...

    @abc.abstractmethod
    def settle(self, seconds: float) -> None: ...

    @abc.abstractmethod
    def is_session_open(self) -> bool: ...

    @abc.abstractmethod
    def close(self) -> None: ...


# Filter input inside, or in the same column as, the first header matching arguments[0]
_COLUMN_FILTER_JS = """
const pattern = new RegExp(arguments[0], 'i');
for (const table of document.querySelectorAll('table')) {
  const rows = Array.from(table.querySelectorAll('tr'));
  if (!rows.length) continue;
  const headers = Array.from(rows[0].querySelectorAll('th, td, [role="columnheader"]'));
  const index = headers.findIndex(h => pattern.test((h.textContent || '').trim()));
  if (index === -1) continue;
  const own = headers[index].querySelector('input');
  if (own) return own;
  for (const row of rows.slice(1)) {
    const cells = Array.from(row.querySelectorAll('td, th'));
    const input = cells[index] && cells[index].querySelector('input');
    if (input) return input;
  }
}
return null;
"""

# Text of the header cell directly above the cell holding arguments[0]
_COLUMN_HEADER_JS = """
const cell = arguments[0].closest('td, th');
if (!cell) return '';
const row = cell.closest('tr');
const table = row && row.closest('table');
if (!table) return '';
const headerRow = table.querySelector('tr');
if (!headerRow) return '';
const headers = Array.from(headerRow.querySelectorAll('th, td, [role="columnheader"]'));
const index = Array.from(row.querySelectorAll('td, th')).indexOf(cell);
if (index < 0 || index >= headers.length) return '';
return (headers[index].textContent || '').trim();
"""

_BY = {"css": By.CSS_SELECTOR, "xpath": By.XPATH, "id": By.ID}


class SeleniumDriver(AutomationDriver):
    """``AutomationDriver`` backed by a Selenium WebDriver."""

    def __init__(self, driver: webdriver.Remote) -> None:
        self._driver = driver

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except (InvalidSessionIdException, NoSuchWindowException) as exc:
            raise SessionLost(f"Browser session lost during {action}: {exc.msg or exc}") from exc
        except _UNREACHABLE as exc:
            raise SessionLost(f"Browser unreachable during {action}: {exc}") from exc
        except WebDriverException as exc:
            raise ActionFailed(f"{action} failed: {exc.msg or exc.__class__.__name__}") from exc

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def _find(self, locator: Locator, within: Optional[Handle]) -> Optional[Handle]:
        if locator.kind == "column_filter":
            return self._driver.execute_script(_COLUMN_FILTER_JS, locator.value)
        root = within if within is not None else self._driver
        elements = root.find_elements(_BY[locator.kind], locator.value)
        if len(elements) > locator.index:
            return elements[locator.index]
        return None

    def locate(self, locator: Locator, within: Optional[Handle] = None, timeout: float = 0.0) -> Optional[Handle]:
        with self._guard(f"locate {locator}"):
            if timeout <= 0:
                return self._find(locator, within)
            try:
                return WebDriverWait(self._driver, timeout).until(lambda _d: self._find(locator, within))
            except TimeoutException:
                return None

    def query(
        self,
        locator: Locator,
        predicate: Optional[Callable[[Handle], bool]] = None,
        within: Optional[Handle] = None,
    ) -> List[Handle]:
        with self._guard(f"query {locator}"):
            if locator.kind == "column_filter":
                found = self._find(locator, within)
                elements = [found] if found is not None else []
            else:
                root = within if within is not None else self._driver
                elements = root.find_elements(_BY[locator.kind], locator.value)
            if predicate is None:
                return list(elements)
            matches = []
            for element in elements:
                try:
                    if predicate(element):
                        matches.append(element)
                except StaleElementReferenceException:
                    continue
            return matches

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    def navigate(self, url: str) -> None:
        with self._guard(f"navigate to {url}"):
            self._driver.get(url)

    def click(self, handle: Handle) -> None:
        with self._guard("click"):
            try:
                handle.click()
            except ElementClickInterceptedException:
                # Overlays (MUI backdrops) intercept native clicks
                self._driver.execute_script("arguments[0].click();", handle)

    def fill(self, handle: Handle, text: str) -> None:
        with self._guard("fill"):
            handle.send_keys(text)

    def clear(self, handle: Handle) -> None:
        with self._guard("clear"):
            handle.clear()
            # React-controlled inputs can ignore clear(); wipe them by keystroke too
            if handle.get_attribute("value"):
                handle.send_keys(Keys.CONTROL + "a", Keys.BACKSPACE)

    def press(self, handle: Optional[Handle], key: str) -> None:
        with self._guard(f"press {key}"):
            target = handle if handle is not None else self._driver.switch_to.active_element
            target.send_keys(getattr(Keys, key.upper()))

    def text_of(self, handle: Handle) -> str:
        with self._guard("read text"):
            text = handle.text or handle.get_attribute("textContent") or ""
            return text.strip()

    def wait_visible(self, handle: Handle, timeout: float) -> bool:
        try:
            WebDriverWait(self._driver, timeout).until(EC.visibility_of(handle))
            return True
        except (TimeoutException, StaleElementReferenceException):
            return False
        except (InvalidSessionIdException, NoSuchWindowException) as exc:
            raise SessionLost(f"Browser session lost while waiting: {exc.msg or exc}") from exc
        except _UNREACHABLE as exc:
            raise SessionLost(f"Browser unreachable while waiting: {exc}") from exc

    def is_editable(self, handle: Handle) -> bool:
        with self._guard("inspect editable"):
            return handle.is_enabled() and handle.get_attribute("readonly") is None

    def unlock(self, handle: Handle) -> None:
        with self._guard("remove readonly"):
            self._driver.execute_script("arguments[0].removeAttribute('readonly');", handle)

    def is_checked(self, handle: Handle) -> bool:
        with self._guard("inspect checked"):
            return handle.is_selected()

    def column_header_of(self, handle: Handle) -> str:
        with self._guard("read column header"):
            return self._driver.execute_script(_COLUMN_HEADER_JS, handle) or ""

    def scroll_into_view(self, handle: Handle) -> None:
        with self._guard("scroll"):
            self._driver.execute_script(
                "arguments[0].scrollIntoView({behavior: 'auto', block: 'center', inline: 'center'});",
                handle,
            )

    def settle(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def is_session_open(self) -> bool:
        try:
            return bool(self._driver.window_handles)
        except Exception as exc:
            LOGGER.debug("Session check failed: %s", exc)
            return False

    def close(self) -> None:
        try:
            self._driver.quit()
        except (WebDriverException, *_UNREACHABLE) as exc:
            LOGGER.warning("Error closing Chrome driver: %s", exc)


# ----------------------------------------------------------------------
# Session bootstrap
# ----------------------------------------------------------------------
def build_chrome(config: BotConfig) -> webdriver.Chrome:
    chrome_options = Options()
    for argument in config.chrome_args:
        chrome_options.add_argument(argument)
    if config.headless:
        chrome_options.add_argument("--headless=new")
    chrome_options.add_argument("--start-maximized")
    chrome_options.add_experimental_option("excludeSwitches", ["enable-logging"])

    try:
        service = Service(ChromeDriverManager().install())
        driver = webdriver.Chrome(service=service, options=chrome_options)
    except (ValueError, OSError) as exc:
        # webdriver-manager needs network access; Selenium Manager can still resolve a driver
        LOGGER.warning("webdriver-manager could not provision chromedriver (%s); using Selenium Manager", exc)
        driver = webdriver.Chrome(options=chrome_options)
    driver.set_page_load_timeout(config.timeouts.page_load)
    return driver


@contextmanager
def open_browser_session(
    config: BotConfig,
    factory: Callable[[BotConfig], AutomationDriver] = None,
) -> Iterator[Optional[AutomationDriver]]:
    """Own the browser for the duration of a run. Dry runs get ``None``."""
    if config.dry_run:
        LOGGER.info("Dry run - browser not launched")
        yield None
        return

    if factory is None:
        factory = lambda cfg: SeleniumDriver(build_chrome(cfg))  # noqa: E731

    LOGGER.info("Launching browser...")
    driver = factory(config)
    try:
        yield driver
    finally:
        LOGGER.info("Closing browser...")
        driver.close()


__all__ = [
    "AutomationDriver",
    "Handle",
    "Locator",
    "SeleniumDriver",
    "build_chrome",
    "open_browser_session",
]
