# src/ctl_fill/session.py
import time
import logging
from typing import Any, Callable, Optional

from selenium.webdriver.remote.webelement import WebElement
from selenium.webdriver.support.ui import WebDriverWait
from selenium.common.exceptions import (
    TimeoutException,
    WebDriverException,
    StaleElementReferenceException,
    ElementClickInterceptedException,
    ElementNotInteractableException,
)

from .driver import create_driver
from .instrumentation import Cat, Counters, InstrumentPolicy, LogMode, RateLimiter, format_ctx
from . import scripts
from .. import config  # src/config.py

_LEVELS = {
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "err": logging.ERROR,
    "error": logging.ERROR,
    "critical": logging.ERROR,
    "fatal": logging.ERROR,
}


class FillSession:
    """
    Browser session shared by every fill component.

    Owns the driver, the logger + instrumentation policy, and the two time
    primitives (sleep, clock) the cooperative loops suspend on.
    """

    def __init__(
        self,
        logger=None,
        *,
        driver=None,
        sleep: Callable[[float], None] | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.driver = driver if driver is not None else create_driver()
        self.logger = logger or logging.getLogger("ctl_fill")
        self.sleep = sleep or time.sleep
        self.clock = clock or time.monotonic

        self.wait = WebDriverWait(self.driver, config.WAIT_TIME)

        # Instrumentation setup
        mode = LogMode(config.LOG_MODE) if config.LOG_MODE in ("live", "debug", "trace") else LogMode.LIVE

        self.instr_policy = InstrumentPolicy(
            mode=mode,
            include_ctx=True,
            rate_limits_s=getattr(config, "LOG_RATE_LIMITS_S", {}) or {},
        )
        self.counters = Counters()
        self._rate = RateLimiter(clock=self.clock)
        self.emit_signal(
            Cat.STARTUP,
            "Session initialized",
            kind="startup",
            log_mode=mode.value,
            wait_time=config.WAIT_TIME,
        )

    def open(self, url: str) -> None:
        """Navigate and wait (up to WAIT_TIME) for the document to finish loading."""
        self.emit_signal(Cat.NAV, f"Opening {url}", kind="nav")
        self.driver.get(url)
        try:
            self.wait.until(lambda d: d.execute_script(scripts.DOCUMENT_READY_STATE) == "complete")
        except TimeoutException:
            self.emit_signal(Cat.NAV, "Page still loading; continuing anyway.", level="warning", kind="nav")

    def close(self):
        self.driver.quit()

    def run_script(self, script: str, *args: Any) -> Any:
        return self.driver.execute_script(script, *args)

    def is_visible(self, el: WebElement | None) -> bool:
        if el is None:
            return False
        try:
            return bool(el.is_displayed())
        except (StaleElementReferenceException, WebDriverException):
            return False

    def first_visible(self, elements) -> Optional[WebElement]:
        for el in elements or []:
            if self.is_visible(el):
                return el
        return None

    def click(
        self,
        el: WebElement,
        *,
        label: str = "<element>",
        retries: int = 3,
        scroll: bool = True,
        js_fallback: bool = True,
    ) -> bool:
        """
        Click `el`, falling back to a JS click when something overlays it.

        Retries stale/intercepted states with a short pause. Returns False
        (after a warning) when no click went through.
        """
        for attempt in range(1, retries + 1):
            ctx = {"kind": "click", "label": label, "a": attempt}
            try:
                if scroll:
                    try:
                        self.run_script(scripts.SCROLL_INTO_VIEW, el)
                    except WebDriverException:
                        pass
                try:
                    el.click()
                    how = "native"
                except (ElementClickInterceptedException, ElementNotInteractableException) as e:
                    if not js_fallback:
                        raise
                    self.emit_diag(Cat.UISTATE, f"Native click refused ({e.__class__.__name__}); trying JS.", **ctx)
                    self.run_script(scripts.JS_CLICK, el)
                    how = "js"
                self.emit_diag(Cat.UISTATE, f"Clicked ({how}).", **ctx)
                return True
            except StaleElementReferenceException:
                self.emit_diag(Cat.UISTATE, "Element went stale.", **ctx)
            except WebDriverException as e:
                self.emit_diag(Cat.UISTATE, f"Click failed: {e}", **ctx)
            if attempt < retries:
                self.sleep(0.2)

        self.emit_signal(Cat.UISTATE, f"Giving up on click after {retries} attempts.", level="warning", kind="click", label=label)
        return False

    # -------- instrumentation --------
    def _render(self, cat: Cat, msg: str, ctx: dict[str, Any]) -> str:
        if self.instr_policy.include_ctx:
            c = format_ctx(**ctx)
            if c:
                msg = f"{msg} :: {c}"
        return f"[{cat.value}] {msg}"

    def emit_signal(self, cat: Cat, msg: str, *, level: str | int = "info", **ctx):
        # always allowed
        lvl = level if isinstance(level, int) else _LEVELS.get((level or "info").lower(), logging.INFO)
        self.logger.log(lvl, self._render(cat, msg, ctx))

    def emit_diag(self, cat: Cat, msg: str, *, key: str | None = None, every_s: float | None = None, **ctx):
        # gated by mode; DEBUG+ only
        if self.instr_policy.mode == LogMode.LIVE:
            return
        if key:
            every_s = every_s or self.instr_policy.rate_limits_s.get(key)
            if every_s and not self._rate.allow(key, every_s):
                return
        self.logger.debug(self._render(cat, msg, ctx))

    def emit_trace(self, cat: Cat, msg: str, **ctx):
        if self.instr_policy.mode != LogMode.TRACE:
            return
        self.logger.debug(self._render(cat, msg, ctx))
