"""Session-scoped portal actions: login, navigation and the global filters."""

from __future__ import annotations

import logging

from . import locators
from .config import BotConfig
from .credentials import Credentials
from .errors import SessionLost
from .resolver import ElementResolver

LOGGER = logging.getLogger(__name__)


class ClaimsPortal:
    """Drives the one-time portal setup through the resolver.

    Each method either completes its action or raises (``ResolutionFailed``,
    ``ActionFailed`` or ``SessionLost``). Deciding what a failure means for
    the run is left to the session state machine.
    """

    def __init__(self, resolver: ElementResolver, config: BotConfig, credentials: Credentials = None) -> None:
        self.resolver = resolver
        self.driver = resolver.driver
        self.config = config
        self.credentials = credentials

    def _settle(self, factor: float = 1.0) -> None:
        self.driver.settle(self.config.settle_delay * factor)

    def _click(self, candidates, purpose: str) -> None:
        handle = self.resolver.resolve(candidates, purpose=purpose)
        self.driver.click(handle)

    def login(self) -> None:
        if self.credentials is None:
            raise SessionLost("No credentials available for login")
        LOGGER.info("Opening login page...")
        self.driver.navigate(self.config.login_url)

        email_input = self.resolver.resolve(locators.LOGIN_EMAIL, purpose="login email")
        self.driver.clear(email_input)
        self.driver.fill(email_input, self.credentials.email)

        # The password input stays readonly until it has been clicked
        password_input = self.resolver.resolve(locators.LOGIN_PASSWORD, purpose="login password")
        self.driver.click(password_input)
        self._settle()
        self.driver.unlock(password_input)
        self.driver.clear(password_input)
        self.driver.fill(password_input, self.credentials.password)

        self._click(locators.LOGIN_BUTTON, "Login button")
        self.driver.settle(self.config.timeouts.short)
        if not self.driver.is_session_open():
            raise SessionLost("Browser closed after login submission")
        LOGGER.info("Login submitted for %s", self.credentials.email)

    def open_listing(self) -> None:
        LOGGER.info("Navigating to accounts listing...")
        self.driver.navigate(self.config.listing_url)
        self._settle(4)

    def open_claims(self) -> None:
        self._click(locators.OPERATIONS_MENU, "Operations menu")
        self._settle()
        self._click(locators.CLAIMS_BUTTON, "Claims button")
        self._settle(2)
        if self.resolver.try_resolve(locators.CLAIMS_PAGE_MARKER, purpose="Claims page") is None:
            LOGGER.warning("Claims page marker not found, continuing anyway")

    def _check_option(self, candidates, purpose: str) -> None:
        option = self.resolver.resolve(candidates, purpose=purpose)
        if not self.driver.is_checked(option):
            self.driver.click(option)
        self._settle()

    def apply_entity_source_filter(self) -> None:
        value = self.config.entity_source
        LOGGER.info("Applying Entity Source filter (%s)", value)
        self._click(locators.ENTITY_SOURCE_MENU, "Entity Source filter menu")
        self._settle(2)
        self._check_option(locators.entity_source_option(value), f"Entity Source option '{value}'")
        self._click(locators.APPLY_FILTER_BUTTON, "Apply Filter button")
        self._settle(4)

    def apply_assessment_filter(self) -> None:
        value = self.config.assessment_resource
        LOGGER.info("Applying Assessment/Resource filter (%s)", value)
        self._click(locators.ASSESSMENT_FILTER, "Assessment/Resource filter")
        self._settle(2)
        self._check_option(locators.assessment_option(value), f"Assessment option '{value}'")
        self._click(locators.APPLY_BUTTON, "Apply button")
        self._settle(4)


__all__ = ["ClaimsPortal"]
