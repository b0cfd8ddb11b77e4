from __future__ import annotations

from contextlib import contextmanager
from itertools import count
from typing import Any, Callable, Iterator, Optional, TypeVar

from selenium.webdriver.common.by import By
from selenium.webdriver.remote.webelement import WebElement
from selenium.common.exceptions import StaleElementReferenceException, WebDriverException

from .errors import InteractionNotFound, PreconditionViolation
from .field_handles import FieldHandle
from .guards import GuardRegistry
from .injection import StateInjectionEngine
from .instrumentation import Cat
from .locator import FieldLocator, norm_text
from .retry import Converged, poll_until
from .types import SelectionResult, SelectionStatus
from . import scripts
from .. import config

T = TypeVar("T")

_guard_tokens = count(1)


class SelectionSequencer:
    """
    Reveal-and-choose driver for picker widgets.

    Opens the picker, picks the option whose rendered text matches exactly,
    waits for the dependent input to mount and hands it to the injection
    engine. Options are never chosen by position and never guessed.
    """

    def __init__(
        self,
        engine: StateInjectionEngine,
        locator: FieldLocator,
        guards: GuardRegistry,
    ):
        self.engine = engine
        self.session = engine.session
        self.driver = engine.session.driver
        self.locator = locator
        self.guards = guards

    def _select_ctx(self, target_name: str, **extra: Any) -> dict[str, Any]:
        ctx: dict[str, Any] = {"fld": target_name, "kind": "select"}
        ctx.update(extra)
        return ctx

    def select_and_fill(
        self,
        container: WebElement,
        option_text: str,
        target_name: str,
        value: Any,
        *,
        quiet: bool = True,
        max_attempts: int | None = None,
    ) -> SelectionResult:
        ctx = self._select_ctx(target_name, option=option_text)
        with self.guards.holding(f"select:{target_name}", cooldown_s=0) as acquired:
            if not acquired:
                self.session.emit_diag(Cat.SELECT, "Selection already running for target; ignoring.", **ctx)
                return SelectionResult(SelectionStatus.REENTRANCY_REJECTED, detail="selection already in progress")

            try:
                with self._interference_guard(container, target_name):
                    field = self._reveal(container, option_text, target_name)
                    result = self.engine.inject(field, value, quiet=quiet, max_attempts=max_attempts)
            except InteractionNotFound as e:
                self.session.counters.inc("select.not_found")
                self.session.emit_signal(Cat.SELECT, f"Selection failed: {e}", level="warning", **ctx)
                return SelectionResult(SelectionStatus.INTERACTION_NOT_FOUND, detail=str(e))
            except PreconditionViolation as e:
                self.session.emit_signal(Cat.SELECT, f"Selection target unusable: {e}", level="warning", **ctx)
                return SelectionResult(SelectionStatus.PRECONDITION, detail=str(e))

        if result.committed:
            self.session.counters.inc("select.ok")
            return SelectionResult(SelectionStatus.OK, convergence=result)
        return SelectionResult(
            SelectionStatus.CONVERGENCE_FAILED,
            convergence=result,
            detail=f"observed {result.observed_value!r}",
        )

    # -------- sequence steps --------
    def _reveal(self, container: WebElement, option_text: str, target_name: str) -> FieldHandle:
        sels = config.SELECTORS["select"]
        ctx = self._select_ctx(target_name, option=option_text)

        # 1) already revealed: nothing to choose
        existing = self.locator.locate(target_name, visible_only=True)
        if existing is not None:
            self.session.emit_diag(Cat.SELECT, "Target input already visible.", **ctx)
            return existing

        # 2) open the picker
        display = self.session.first_visible(self._find_all(container, sels["display"]))
        if display is None:
            raise InteractionNotFound(f"no current-value display in picker for {target_name!r}")
        if not self.session.click(display, label=f"picker display ({target_name})"):
            raise InteractionNotFound(f"could not open picker for {target_name!r}")

        panel = self._poll(
            lambda: self.session.first_visible(self._find_all(None, sels["panel"])),
            attempts=config.SELECT_PANEL_POLL_ATTEMPTS,
            what="option panel",
        )

        # 3) exact text match only
        option = self._match_option(panel, option_text)
        self.session.emit_diag(Cat.SELECT, "Option matched.", **ctx)

        # 4) choose; an intermediate popover may need dismissing first
        if not self.session.click(option, scroll=False, label=f"option {option_text!r}"):
            raise InteractionNotFound(f"could not click option {option_text!r}")

        revealed = self._poll(
            lambda: self._revealed_or_intermediate(target_name),
            attempts=config.SELECT_REVEAL_POLL_ATTEMPTS,
            what=f"input {target_name!r} or intermediate panel",
        )
        if isinstance(revealed, FieldHandle):
            return revealed

        self.session.emit_diag(Cat.SELECT, "Dismissing intermediate panel.", **ctx)
        self.session.run_script(scripts.CLICK_OUTSIDE, revealed)

        # 5) wait for the dependent input
        return self._poll(
            lambda: self.locator.locate(target_name, visible_only=True),
            attempts=config.SELECT_REVEAL_POLL_ATTEMPTS,
            what=f"input {target_name!r}",
        )

    def _match_option(self, panel: WebElement, option_text: str) -> WebElement:
        want = norm_text(option_text)
        options = self._find_all(panel, config.SELECTORS["select"]["option"])
        offered: list[tuple[WebElement, str]] = []
        for opt in options:
            try:
                offered.append((opt, norm_text(opt.text)))
            except StaleElementReferenceException:
                continue
        matches = [opt for opt, text in offered if text == want]
        if not matches:
            seen = [text for _, text in offered]
            raise InteractionNotFound(f"option {option_text!r} not offered (options: {seen!r})")
        if len(matches) > 1:
            raise InteractionNotFound(f"option {option_text!r} is ambiguous ({len(matches)} matches)")
        return matches[0]

    def _revealed_or_intermediate(self, target_name: str) -> FieldHandle | WebElement | None:
        field = self.locator.locate(target_name, visible_only=True)
        if field is not None:
            return field
        return self.session.first_visible(self._find_all(None, config.SELECTORS["select"]["intermediate_panel"]))

    # -------- helpers --------
    def _find_all(self, root: Optional[WebElement], selector: str) -> list[WebElement]:
        try:
            scope = root if root is not None else self.driver
            return list(scope.find_elements(By.CSS_SELECTOR, selector))
        except (StaleElementReferenceException, WebDriverException):
            return []

    def _poll(self, probe: Callable[[], Optional[T]], *, attempts: int, what: str) -> T:
        def _checked() -> Optional[T]:
            self.session.emit_diag(Cat.SELECT, f"Waiting for {what}.", key="SELECT.poll")
            return probe()

        outcome = poll_until(
            _checked,
            accept=lambda found: found is not None,
            attempts=attempts,
            backoff_s=config.SELECT_POLL_INTERVAL_S,
            sleep=self.session.sleep,
        )
        if isinstance(outcome, Converged):
            return outcome.value
        raise InteractionNotFound(f"{what} did not appear after {attempts} checks")

    @contextmanager
    def _interference_guard(self, container: WebElement, target_name: str) -> Iterator[None]:
        """Block clicks on other pickers for the duration of the sequence."""
        token = f"select-{next(_guard_tokens)}"
        caps = list(config.SELECTORS["select"]["capabilities"])
        try:
            self.session.run_script(scripts.INSTALL_SELECTION_GUARD, container, caps, token)
        except WebDriverException as e:
            raise PreconditionViolation(f"selection guard could not be installed: {e}") from e
        self.session.emit_diag(Cat.GUARD, "Selection guard installed.", fld=target_name, token=token)
        try:
            yield
        finally:
            try:
                self.session.run_script(scripts.REMOVE_SELECTION_GUARD, token)
                self.session.emit_diag(Cat.GUARD, "Selection guard removed.", fld=target_name, token=token)
            except WebDriverException as e:
                self.session.emit_signal(
                    Cat.GUARD,
                    f"Selection guard removal failed: {e}",
                    level="warning",
                    fld=target_name,
                )
