"""Tests for the Selenium adapter's error translation and browser lifetime."""

from unittest.mock import MagicMock, PropertyMock

import pytest
from selenium.common.exceptions import (
    ElementClickInterceptedException,
    InvalidSessionIdException,
    NoSuchWindowException,
    StaleElementReferenceException,
    WebDriverException,
)
from selenium.webdriver.common.by import By
from selenium.webdriver.common.keys import Keys
from urllib3.exceptions import MaxRetryError, ProtocolError

from conftest import RecordingDriver
from qhslab_claims.driver import Locator, SeleniumDriver, open_browser_session
from qhslab_claims.errors import ActionFailed, SessionLost
from qhslab_claims.models import RunMode
from qhslab_claims.session import SessionState, SessionStateMachine


def _unreachable():
    return MaxRetryError(None, "/session/abc/window/handles")


@pytest.fixture
def remote():
    return MagicMock(name="webdriver")


@pytest.fixture
def element():
    return MagicMock(name="element")


@pytest.fixture
def selenium_driver(remote):
    return SeleniumDriver(remote)


class TestErrorTranslation:
    @pytest.mark.parametrize("error", [InvalidSessionIdException("invalid session id"), NoSuchWindowException("gone")])
    def test_dead_session_is_session_lost(self, selenium_driver, element, error):
        element.click.side_effect = error

        with pytest.raises(SessionLost):
            selenium_driver.click(element)

    def test_other_webdriver_errors_are_action_failed(self, selenium_driver, remote):
        remote.get.side_effect = WebDriverException("net::ERR_NAME_NOT_RESOLVED")

        with pytest.raises(ActionFailed, match="ERR_NAME_NOT_RESOLVED"):
            selenium_driver.navigate("https://example.test")

    def test_unreachable_browser_on_navigate(self, selenium_driver, remote):
        remote.get.side_effect = _unreachable()

        with pytest.raises(SessionLost, match="unreachable"):
            selenium_driver.navigate("https://example.test")

    def test_connection_refused_on_lookup(self, selenium_driver, remote):
        remote.find_elements.side_effect = ConnectionRefusedError("localhost:9515")

        with pytest.raises(SessionLost):
            selenium_driver.locate(Locator("css", "input"))

    def test_dropped_connection_on_fill(self, selenium_driver, element):
        element.send_keys.side_effect = ProtocolError("Connection aborted.")

        with pytest.raises(SessionLost):
            selenium_driver.fill(element, "1001")

    def test_unreachable_while_waiting_for_visibility(self, selenium_driver, element):
        element.is_displayed.side_effect = _unreachable()

        with pytest.raises(SessionLost):
            selenium_driver.wait_visible(element, 0.1)

    def test_intercepted_click_falls_back_to_script(self, selenium_driver, remote, element):
        element.click.side_effect = ElementClickInterceptedException("backdrop in the way")

        selenium_driver.click(element)

        remote.execute_script.assert_called_once_with("arguments[0].click();", element)


class TestSessionCheck:
    def test_open_window(self, selenium_driver, remote):
        type(remote).window_handles = PropertyMock(return_value=["main"])

        assert selenium_driver.is_session_open()

    def test_no_windows(self, selenium_driver, remote):
        type(remote).window_handles = PropertyMock(return_value=[])

        assert not selenium_driver.is_session_open()

    @pytest.mark.parametrize(
        "error",
        [InvalidSessionIdException("invalid session id"), _unreachable(), ConnectionResetError("reset")],
    )
    def test_any_error_means_closed(self, selenium_driver, remote, error):
        type(remote).window_handles = PropertyMock(side_effect=error)

        assert not selenium_driver.is_session_open()

    def test_dead_chromedriver_halts_session_setup(self, selenium_driver, remote):
        type(remote).window_handles = PropertyMock(side_effect=_unreachable())
        machine = SessionStateMachine(portal=None, driver=selenium_driver)

        with pytest.raises(SessionLost):
            machine.ensure_ready(SessionState())

    def test_close_tolerates_unreachable_browser(self, selenium_driver, remote):
        remote.quit.side_effect = _unreachable()

        selenium_driver.close()

        remote.quit.assert_called_once_with()


class TestLookup:
    def test_locate_honours_index(self, selenium_driver, remote):
        first, second = MagicMock(name="first"), MagicMock(name="second")
        remote.find_elements.return_value = [first, second]

        assert selenium_driver.locate(Locator("css", "input.filter", index=1)) is second
        remote.find_elements.assert_called_with(By.CSS_SELECTOR, "input.filter")

    def test_locate_missing_index(self, selenium_driver, remote):
        remote.find_elements.return_value = [MagicMock()]

        assert selenium_driver.locate(Locator("xpath", "//tr", index=3)) is None

    def test_query_skips_stale_rows(self, selenium_driver, remote):
        fresh, stale = MagicMock(name="fresh"), MagicMock(name="stale")
        remote.find_elements.return_value = [stale, fresh]

        def predicate(handle):
            if handle is stale:
                raise StaleElementReferenceException("detached")
            return True

        assert selenium_driver.query(Locator("css", "tr"), predicate=predicate) == [fresh]

    def test_press_named_key(self, selenium_driver, element):
        selenium_driver.press(element, "enter")

        element.send_keys.assert_called_once_with(Keys.ENTER)


class TestBrowserSession:
    def test_closed_when_body_raises(self, config):
        driver = RecordingDriver()

        with pytest.raises(RuntimeError):
            with open_browser_session(config, lambda cfg: driver):
                raise RuntimeError("row loop blew up")

        assert driver.closed

    def test_dry_run_never_starts_a_browser(self, config):
        config.mode = RunMode.DRY_RUN
        started = []

        with open_browser_session(config, started.append) as driver:
            assert driver is None

        assert started == []
