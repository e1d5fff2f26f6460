"""Shared fixtures: a recording fake driver and workbook builders."""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import openpyxl
import pytest

from qhslab_claims.config import BotConfig, Timeouts
from qhslab_claims.driver import AutomationDriver, Locator
from qhslab_claims.errors import ActionFailed, SessionLost


@dataclass(eq=False)
class FakeElement:
    """A scriptable control. ``value`` accumulates fills like a real input."""

    name: str
    text: str = ""
    visible: bool = True
    editable: bool = True
    checked: bool = False
    header: str = ""
    value: str = ""
    fail_click: bool = False
    on_click: Optional[Callable[[], None]] = None
    children: Dict[Locator, List["FakeElement"]] = field(default_factory=dict)

    def __repr__(self):
        return f"<FakeElement {self.name}>"


class RecordingDriver(AutomationDriver):
    """In-memory ``AutomationDriver`` that logs every interaction.

    ``calls`` holds ``(method, element name, argument)`` tuples in order.
    Controls are registered per ``Locator``; ``locate`` returns the first
    registered element and ``query`` returns all of them.
    """

    def __init__(self):
        self.elements: Dict[Locator, List[FakeElement]] = {}
        self.calls: List[tuple] = []
        self.session_open = True
        self.lose_session_on: Optional[str] = None
        self.closed = False

    # -- scripting helpers ---------------------------------------------
    def add(self, locator: Locator, *elements: FakeElement) -> FakeElement:
        self.elements.setdefault(locator, []).extend(elements)
        return elements[0] if elements else None

    def names(self, method: str) -> List[str]:
        return [name for m, name, _ in self.calls if m == method]

    def _record(self, method: str, handle=None, arg=None):
        self.calls.append((method, getattr(handle, "name", None), arg))
        if self.lose_session_on == method:
            raise SessionLost(f"session lost during {method}")

    # -- AutomationDriver ----------------------------------------------
    def navigate(self, url):
        self._record("navigate", arg=url)

    def locate(self, locator, within=None, timeout=0.0):
        self._record("locate", within, str(locator))
        pool = within.children if within is not None else self.elements
        # Locators compare by kind, value and index, so each is its own key
        candidates = pool.get(locator, [])
        return candidates[0] if candidates else None

    def query(self, locator, predicate=None, within=None):
        self._record("query", within, str(locator))
        pool = within.children if within is not None else self.elements
        found = list(pool.get(locator, []))
        if predicate is not None:
            found = [element for element in found if predicate(element)]
        return found

    def click(self, handle):
        self._record("click", handle)
        if handle.fail_click:
            raise ActionFailed(f"click on {handle.name} intercepted")
        if handle.on_click:
            handle.on_click()

    def fill(self, handle, text):
        self._record("fill", handle, text)
        handle.value += text

    def clear(self, handle):
        self._record("clear", handle)
        handle.value = ""

    def press(self, handle, key):
        self._record("press", handle, key)

    def text_of(self, handle):
        return handle.text

    def wait_visible(self, handle, timeout):
        return handle.visible

    def is_editable(self, handle):
        return handle.editable

    def unlock(self, handle):
        self._record("unlock", handle)
        handle.editable = True

    def is_checked(self, handle):
        return handle.checked

    def column_header_of(self, handle):
        return handle.header

    def scroll_into_view(self, handle):
        pass

    def settle(self, seconds):
        pass

    def is_session_open(self):
        return self.session_open

    def close(self):
        self.closed = True


@pytest.fixture
def driver():
    return RecordingDriver()


@pytest.fixture
def config(tmp_path):
    return BotConfig(
        settle_delay=0,
        timeouts=Timeouts(page_load=1, element_wait=0.1, short=0.1),
        excel_dir=str(tmp_path),
        log_dir=str(tmp_path / "logs"),
    )


def build_workbook(path, rows, sheet_name="Input"):
    """Save ``rows`` (first one is the header) to ``path`` and return it."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_name
    for row in rows:
        ws.append(list(row))
    wb.save(path)
    wb.close()
    return path


def read_sheet(path, sheet_name=None):
    wb = openpyxl.load_workbook(path)
    ws = wb[sheet_name] if sheet_name else wb.active
    values = [[cell.value for cell in row] for row in ws.iter_rows()]
    wb.close()
    return values


@pytest.fixture
def make_workbook(tmp_path):
    def _make(rows, name="claims.xlsx", sheet_name="Input"):
        return build_workbook(tmp_path / name, rows, sheet_name)

    return _make
