from typing import Optional

from selenium.webdriver.common.by import By
from selenium.webdriver.remote.webelement import WebElement
from selenium.common.exceptions import WebDriverException

from .field_handles import FieldHandle
from .instrumentation import Cat
from .session import FillSession
from .types import FieldKind
from .. import config

BOOLEAN_INPUT_TYPES = {"checkbox", "radio"}
STRUCTURED_INPUT_TYPES = {"date", "datetime-local", "month"}


def norm_text(s: str | None) -> str:
    return " ".join((s or "").split())


def infer_kind(el: WebElement) -> FieldKind:
    tag = (el.tag_name or "").lower()
    input_type = (el.get_attribute("type") or "").lower()
    if tag == "input" and input_type in BOOLEAN_INPUT_TYPES:
        return FieldKind.BOOLEAN
    if tag == "input" and input_type in STRUCTURED_INPUT_TYPES:
        return FieldKind.STRUCTURED
    return FieldKind.TEXT


class FieldLocator:
    """
    Resolve a logical field identity (name attribute or label text) to a
    FieldHandle. Returns None when nothing matches; never retries.
    """

    def __init__(self, session: FillSession):
        self.session = session
        self.driver = session.driver

    def locate(self, name: str, *, visible_only: bool = False) -> Optional[FieldHandle]:
        el = self._by_name(name, visible_only) or self._by_label(name, visible_only)
        if el is None:
            self.session.emit_diag(Cat.LOCATE, "No field found.", fld=name)
            return None
        kind = infer_kind(el)
        self.session.emit_trace(Cat.LOCATE, "Field found.", fld=name, kind=kind.value)
        return FieldHandle(element=el, kind=kind, name=name)

    def _pick(self, elements, visible_only: bool) -> Optional[WebElement]:
        if not elements:
            return None
        if visible_only:
            return self.session.first_visible(elements)
        return elements[0]

    def _by_name(self, name: str, visible_only: bool) -> Optional[WebElement]:
        sel = config.SELECTORS["locator"]["by_name"].format(name=name.replace("'", "\\'"))
        try:
            return self._pick(self.driver.find_elements(By.CSS_SELECTOR, sel), visible_only)
        except WebDriverException:
            return None

    def _by_label(self, text: str, visible_only: bool) -> Optional[WebElement]:
        want = norm_text(text)
        try:
            labels = self.driver.find_elements(By.CSS_SELECTOR, config.SELECTORS["locator"]["labels"])
        except WebDriverException:
            return None
        for label in labels:
            try:
                if norm_text(label.text) != want:
                    continue
                target_id = label.get_attribute("for")
                if not target_id:
                    continue
                found = self._pick(self.driver.find_elements(By.ID, target_id), visible_only)
            except WebDriverException:
                continue
            if found is not None:
                return found
        return None
