# ctl_fill/field_handles.py
from dataclasses import dataclass
from typing import Optional

from selenium.webdriver.remote.webelement import WebElement

from .types import FieldKind

@dataclass(frozen=True)
class FieldHandle:
    """
    Reference to one controlled field on the page.
    """
    element: WebElement
    kind: FieldKind = FieldKind.TEXT
    name: Optional[str] = None   # logical identity used to locate it (name or label text)

    @property
    def label(self) -> str:
        return self.name or "<field>"
