"""Control descriptions for the QHSLab portal.

Everything here is data: ordered ``Strategy`` tuples handed to the
resolver. Adding a fallback for a control means appending to its tuple.
Controls whose text depends on configuration are built by small factories.
"""

from __future__ import annotations

from typing import Tuple

from .driver import Locator
from .resolver import Strategy, header_matches, is_editable

Candidates = Tuple[Strategy, ...]


def _xpath_literal(text: str) -> str:
    if "'" not in text:
        return f"'{text}'"
    if '"' not in text:
        return f'"{text}"'
    parts = text.split("'")
    return "concat(" + ", \"'\", ".join(f"'{part}'" for part in parts) + ")"


def _lower(expr: str) -> str:
    return f"translate({expr}, 'ABCDEFGHIJKLMNOPQRSTUVWXYZ', 'abcdefghijklmnopqrstuvwxyz')"


_FILTER_INPUT = f"input[contains({_lower('@placeholder')}, 'filter')]"

# ----------------------------------------------------------------------
# Login
# ----------------------------------------------------------------------
_LOGIN_CONTAINER = "div.MuiGrid-root.MuiGrid-container.MuiGrid-align-items-xs-center.MuiGrid-justify-content-xs-center"

LOGIN_EMAIL: Candidates = (
    Strategy("login grid first input", Locator("css", f"{_LOGIN_CONTAINER} input", 0)),
    Strategy("email type input", Locator("css", "input[type='email'], input[name='email']")),
)

LOGIN_PASSWORD: Candidates = (
    Strategy("login grid second input", Locator("css", f"{_LOGIN_CONTAINER} input", 1)),
    Strategy("password type input", Locator("css", "input[type='password']")),
)

LOGIN_BUTTON: Candidates = (
    Strategy("login button text", Locator("xpath", "//button[normalize-space()='Login']")),
    Strategy("submit button", Locator("css", "button[type='submit']")),
)

# ----------------------------------------------------------------------
# Navigation
# ----------------------------------------------------------------------
OPERATIONS_MENU: Candidates = (
    Strategy("operations div (second)", Locator("xpath", "//div[normalize-space()='Operations']", 1)),
    Strategy("operations div (first)", Locator("xpath", "//div[normalize-space()='Operations']", 0)),
)

CLAIMS_BUTTON: Candidates = (
    Strategy("claims button", Locator("xpath", "//button[contains(normalize-space(), 'Claims')]")),
    Strategy("claims role button", Locator("xpath", "//*[@role='button'][contains(normalize-space(), 'Claims')]")),
)

CLAIMS_PAGE_MARKER: Candidates = (
    Strategy("claims heading", Locator("xpath", "//*[self::h1 or self::h2 or self::h3 or self::h4 or self::h5 or self::h6][contains(normalize-space(), 'Claims')]")),
    Strategy("listing table", Locator("css", "table")),
)

# ----------------------------------------------------------------------
# Global (session-scoped) filters
# ----------------------------------------------------------------------
ENTITY_SOURCE_MENU: Candidates = (
    Strategy(
        "entity source header 'All'",
        Locator("xpath", "//th[contains(normalize-space(), 'Entity Source')]//*[@aria-label='All' or normalize-space(text())='All']"),
    ),
    Strategy(
        "entity source columnheader 'All'",
        Locator("xpath", "//*[@role='columnheader'][contains(normalize-space(), 'Entity Source')]//*[@aria-label='All' or normalize-space(text())='All']"),
    ),
)


def entity_source_option(value: str) -> Candidates:
    literal = _xpath_literal(value)
    return (
        Strategy(
            "option checkbox",
            Locator("xpath", f"//*[@role='option'][contains(normalize-space(), {literal})]//input[@type='checkbox']"),
        ),
        Strategy(
            "option role checkbox",
            Locator("xpath", f"//*[@role='option'][contains(normalize-space(), {literal})]//*[@role='checkbox']"),
        ),
        Strategy("list item", Locator("xpath", f"//li[contains(normalize-space(), {literal})]")),
    )


APPLY_FILTER_BUTTON: Candidates = (
    Strategy("apply filter button", Locator("xpath", "//button[normalize-space()='Apply Filter']")),
)

ASSESSMENT_FILTER: Candidates = (
    Strategy(
        "assessment header filter input",
        Locator("xpath", f"//th[contains(normalize-space(), 'Assessment/Resource')]//{_FILTER_INPUT}"),
    ),
    Strategy(
        "assessment column filter",
        Locator("column_filter", r"^Assessment/Resource"),
        header_matches(r"^\s*Assessment/Resource"),
    ),
)


def assessment_option(value: str) -> Candidates:
    literal = _xpath_literal(value)
    return (
        Strategy(
            "option checkbox",
            Locator("xpath", f"//*[@role='option'][contains(normalize-space(), {literal})]//input[@type='checkbox']"),
        ),
        Strategy(
            "list item checkbox",
            Locator("xpath", f"//li[contains(normalize-space(), {literal})]//*[self::input[@type='checkbox'] or @role='checkbox']"),
        ),
        Strategy("list item", Locator("xpath", f"//li[contains(normalize-space(), {literal})]")),
    )


APPLY_BUTTON: Candidates = (
    Strategy("apply button", Locator("xpath", "//button[normalize-space()='Apply']")),
)

# ----------------------------------------------------------------------
# Row-scoped filters (verified against the header above them)
# ----------------------------------------------------------------------
CUSTOM_ID_FILTER: Candidates = (
    Strategy(
        "custom id header filter input",
        Locator("xpath", f"//th[starts-with(normalize-space(), 'Custom ID')]//{_FILTER_INPUT}"),
        header_matches(r"^\s*Custom ID"),
    ),
    Strategy(
        "custom id column filter",
        Locator("column_filter", r"^Custom ID"),
        header_matches(r"^\s*Custom ID"),
    ),
)

MRN_FILTER: Candidates = (
    Strategy(
        "patient mrn header filter input",
        Locator("xpath", f"//th[contains(normalize-space(), 'Patient MRN')]//{_FILTER_INPUT}"),
        header_matches(r"Patient MRN"),
    ),
    Strategy(
        "patient mrn columnheader filter input",
        Locator("xpath", f"//*[@role='columnheader'][contains(normalize-space(), 'Patient MRN')]//{_FILTER_INPUT}"),
    ),
    Strategy(
        "patient mrn column filter",
        Locator("column_filter", r"Patient MRN"),
        header_matches(r"Patient MRN"),
    ),
)

APPOINTMENT_DATE_FILTER: Candidates = (
    Strategy(
        "appointment date header input",
        Locator("xpath", "//th[contains(normalize-space(), 'Appointment Date')]//input"),
        header_matches(r"Appointment Date"),
    ),
    Strategy(
        "appointment date column filter",
        Locator("column_filter", r"Appointment Date"),
        header_matches(r"Appointment Date"),
    ),
)

DATE_RANGE_START: Candidates = (
    Strategy("first MM/DD/YYYY input", Locator("css", "input[placeholder='MM/DD/YYYY']", 0)),
    Strategy("first date placeholder input", Locator("css", "input[placeholder*='date' i]", 0)),
)

DATE_RANGE_END: Candidates = (
    Strategy("second MM/DD/YYYY input", Locator("css", "input[placeholder='MM/DD/YYYY']", 1)),
    Strategy("second date placeholder input", Locator("css", "input[placeholder*='date' i]", 1)),
)

# ----------------------------------------------------------------------
# Listing
# ----------------------------------------------------------------------
LISTING_TABLE: Candidates = (Strategy("first table", Locator("css", "table")),)

LISTING_ROWS = Locator("css", "table tbody tr, table tr[role='row']")

ROW_FILTER_INPUT = Locator("css", "input[placeholder*='filter' i]")


def entry_link(entity_source: str) -> Candidates:
    literal = _xpath_literal(entity_source)
    return (
        Strategy("entity source text", Locator("xpath", f".//*[contains(normalize-space(text()), {literal})]")),
        Strategy("entity source cell", Locator("xpath", f".//td[contains(normalize-space(), {literal})]")),
    )


# ----------------------------------------------------------------------
# Claim edit form
# ----------------------------------------------------------------------
EDIT_FORM_BUTTON: Candidates = (
    Strategy("edit/open aria button", Locator("css", "button[aria-label*='edit' i], button[aria-label*='open' i]")),
    Strategy("mui icon button", Locator("css", ".MuiIconButton-root")),
    Strategy("svg button", Locator("xpath", "//button[.//*[local-name()='svg']]")),
)

DOS_FIELD: Candidates = (
    Strategy("date of service label", Locator("xpath", "//label[contains(normalize-space(), 'Date of Service')]/..//input")),
    Strategy("dos label", Locator("xpath", "//label[normalize-space()='DOS']/..//input")),
)

ICD_FIELD: Candidates = (
    Strategy("icd label", Locator("xpath", "//label[starts-with(normalize-space(), 'ICD')]/..//input")),
    Strategy("icd container", Locator("xpath", "//div[starts-with(normalize-space(), 'ICD')]//input")),
)

ICD_SEARCH: Candidates = (
    Strategy(
        "search icd placeholder",
        Locator("css", "input[placeholder*='search' i][placeholder*='icd' i]"),
        is_editable,
    ),
    Strategy(
        "editable input in popover",
        Locator(
            "xpath",
            "//*[@role='dialog' or @role='menu' or contains(@class, 'MuiPopover-root') or contains(@class, 'MuiModal-root')]"
            "//input[not(@readonly)]",
        ),
        is_editable,
    ),
    Strategy(
        "editable search input",
        Locator("xpath", f"//input[not(@readonly)][contains({_lower('@placeholder')}, 'search')]"),
        is_editable,
    ),
)

# Queried in order; the first selector that yields visible options wins
ICD_OPTION_LOCATORS: Tuple[Locator, ...] = (
    Locator("css", "[role='listbox'] li[role='option']"),
    Locator("css", "li[role='option']"),
    Locator("css", "li.MuiMenuItem-root"),
    Locator("css", ".MuiAutocomplete-option"),
    Locator("css", "[role='option']"),
)

BILLING_STATUS_FIELD: Candidates = (
    Strategy("billing status label", Locator("xpath", "//label[contains(normalize-space(), 'Billing Status')]/..//input")),
    Strategy("billing status placeholder", Locator("css", "input[placeholder*='Billing Status' i]")),
    Strategy("billing status aria", Locator("xpath", "//*[@aria-label='Billing Status']")),
)


def billing_menu_item(label: str) -> Candidates:
    return (
        Strategy(
            f"menu item '{label}'",
            Locator("xpath", f"//*[@role='menuitem'][normalize-space()={_xpath_literal(label)}]"),
        ),
    )


FIRST_MENU_ITEM: Candidates = (
    Strategy("first menu item", Locator("xpath", "//*[@role='menuitem']")),
    Strategy("first mui menu item", Locator("css", "li.MuiMenuItem-root")),
)

SAVE_BUTTON: Candidates = (
    Strategy("save button", Locator("xpath", "//button[normalize-space()='Save']")),
)

CLOSE_BUTTON: Candidates = (
    Strategy(
        "close/cancel button",
        Locator(
            "xpath",
            f"//button[contains({_lower('normalize-space()')}, 'close') or contains({_lower('normalize-space()')}, 'cancel')]",
        ),
    ),
    Strategy("close aria button", Locator("css", "button[aria-label*='close' i]")),
    Strategy("times button", Locator("xpath", "//button[normalize-space()='×']")),
)
