# controller.py
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional
import json
import logging

from selenium.webdriver.common.by import By
from selenium.common.exceptions import WebDriverException

from .cascade import CascadeController
from .context import FillContext
from .date_adapter import parse_iso_date
from .errors import PreconditionViolation
from .failures import make_failure_record, summarize_failures
from .instrumentation import Cat
from .plan_reader import CascadeRule, FillPlan, FillStep
from .timing import phase_timer
from .types import FailureRecord, SelectionStatus
from .watcher import ChangeWatcher
from .. import config


class FillController:
    def __init__(self, ctx: FillContext):
        self.ctx = ctx
        self.logger = ctx.logger
        self.session = ctx.session
        self.engine = ctx.engine
        self.dates = ctx.dates
        self.locator = ctx.locator
        self.selection = ctx.selection
        self.notifier = ctx.notifier
        self.reader = ctx.reader

        self.failures: list[FailureRecord] = []
        self._cascades: dict[str, CascadeController] = {}

    def control_process(self, plan_path: str | Path) -> list[FailureRecord]:
        """
        landing point from src/main.py
        """
        run_dir = self._init_run_dir()
        self._attach_run_file_logger(run_dir)
        self.logger.info("Run output dir: %s", run_dir.as_posix())

        with phase_timer(self.session, "Plan parse"):
            plan = self.reader.read_path(plan_path)

        failures = self.run(plan)
        self._dump_json(run_dir / "failures.json", failures)
        self._dump_json(run_dir / "counters.json", self.session.counters.snapshot())
        return failures

    def run(self, plan: FillPlan) -> list[FailureRecord]:
        self.failures = []
        self._cascades = {}

        url = plan.url or config.FILL_BASE_URL
        if url:
            with phase_timer(self.session, "Open page"):
                self.session.open(url)

        with phase_timer(self.session, f"Fill {len(plan.steps)} step(s)"):
            for i, step in enumerate(plan.steps):
                ok = self._run_step(i, step)
                if ok:
                    self._cascade_after(step, plan.cascades, i)

        if plan.watch_seconds > 0 and plan.cascades:
            with phase_timer(self.session, f"Watch cascades for {plan.watch_seconds:.0f}s", cat=Cat.WATCH):
                self._watch(plan.cascades, plan.watch_seconds)

        self._log_summary()
        return self.failures

    # -------- steps --------
    def _record(self, step: FillStep, kind, reason: str, *, step_index: int, **extra) -> None:
        rec = make_failure_record(
            field=step.field,
            step_kind=step.kind,
            kind=kind,
            reason=reason,
            requested=step.value,
            step_index=step_index,
            **extra,
        )
        self.failures.append(rec)

    def _run_step(self, i: int, step: FillStep) -> bool:
        ctx = {"fld": step.field, "kind": step.kind, "step": i}
        self.session.emit_diag(Cat.PLAN, "Running step.", **ctx)
        try:
            if step.kind == "select":
                return self._run_select_step(i, step)

            field = self.locator.locate(step.field)
            if field is None:
                raise PreconditionViolation(f"field {step.field!r} not found on page")

            if step.kind == "date":
                parse_iso_date(step.value)
                ok = self.dates.inject_structured_date(field, str(step.value), quiet=bool(step.quiet))
                if not ok:
                    self.notifier.notify(f"Date {step.value} was not accepted by {step.field!r}", "warning")
                    self._record(step, "convergence", "date not accepted", step_index=i)
                return ok

            result = self.engine.inject(field, step.value, max_attempts=step.max_attempts, quiet=bool(step.quiet))
            if not result.committed:
                self.notifier.notify(
                    f"{step.field!r} kept {result.observed_value!r} instead of {step.value!r}",
                    "warning",
                )
                self._record(
                    step,
                    "convergence",
                    "value not accepted",
                    step_index=i,
                    observed=result.observed_value,
                    attempts=result.attempts_used,
                )
            return result.committed

        except PreconditionViolation as e:
            self.session.emit_signal(Cat.PLAN, f"Step skipped: {e}", level="warning", **ctx)
            self._record(step, "precondition", str(e), step_index=i)
            return False

    def _run_select_step(self, i: int, step: FillStep) -> bool:
        container = self._find_container(step.container)
        if container is None:
            raise PreconditionViolation(f"picker container {step.container!r} not found")

        quiet = True if step.quiet is None else bool(step.quiet)
        res = self.selection.select_and_fill(
            container,
            step.option or "",
            step.field,
            step.value,
            quiet=quiet,
            max_attempts=step.max_attempts,
        )
        if res.ok:
            return True

        kind = {
            SelectionStatus.INTERACTION_NOT_FOUND: "interaction_not_found",
            SelectionStatus.REENTRANCY_REJECTED: "reentrancy",
            SelectionStatus.CONVERGENCE_FAILED: "convergence",
            SelectionStatus.PRECONDITION: "precondition",
        }.get(res.status, "unknown")
        if res.status != SelectionStatus.REENTRANCY_REJECTED:
            self.notifier.notify(f"Could not choose {step.option!r} for {step.field!r}: {res.detail}", "warning")
        conv = res.convergence
        self._record(
            step,
            kind,
            res.detail or res.status.value,
            step_index=i,
            observed=conv.observed_value if conv else None,
            attempts=conv.attempts_used if conv else None,
        )
        return False

    def _find_container(self, selector: Optional[str]):
        if not selector:
            return None
        try:
            return self.session.first_visible(self.session.driver.find_elements(By.CSS_SELECTOR, selector))
        except WebDriverException:
            return None

    # -------- cascades --------
    def _cascade_for(self, rule: CascadeRule) -> Optional[CascadeController]:
        key = f"{rule.source}->{rule.dependent}"
        cached = self._cascades.get(key)
        if cached is not None:
            return cached
        dependent = self.locator.locate(rule.dependent)
        if dependent is None:
            return None
        ctrl = CascadeController(self.dates, self.ctx.guards, dependent, source_name=rule.source)
        self._cascades[key] = ctrl
        return ctrl

    def _cascade_after(self, step: FillStep, rules: list[CascadeRule], i: int) -> None:
        if step.kind != "date":
            return
        for rule in rules:
            if rule.source != step.field:
                continue
            ctrl = self._cascade_for(rule)
            if ctrl is None:
                self.notifier.notify(f"Dependent field {rule.dependent!r} not found for cascade", "warning")
                self.failures.append(make_failure_record(
                    field=rule.dependent,
                    step_kind="cascade",
                    kind="precondition",
                    reason="dependent field not found",
                    requested=step.value,
                    step_index=i,
                ))
                continue
            # a cascade still cooling down from an earlier write is a rejection, not a failure
            was_locked = ctrl.locked
            if not ctrl.propagate(str(step.value)) and not was_locked:
                self.notifier.notify(f"Cascade into {rule.dependent!r} failed", "warning")
                self.failures.append(make_failure_record(
                    field=rule.dependent,
                    step_kind="cascade",
                    kind="convergence",
                    reason="dependent date not accepted",
                    requested=step.value,
                    step_index=i,
                ))

    def _watch(self, rules: list[CascadeRule], seconds: float) -> None:
        pairs: list[tuple[ChangeWatcher, CascadeController]] = []
        for rule in rules:
            source = self.locator.locate(rule.source)
            ctrl = self._cascade_for(rule)
            if source is None or ctrl is None:
                self.session.emit_signal(
                    Cat.WATCH,
                    f"Cannot watch {rule.source!r} -> {rule.dependent!r}: field missing",
                    level="warning",
                )
                continue
            watcher = ChangeWatcher(self.session, source, key=f"watch:{rule.source}->{rule.dependent}")
            if watcher.install():
                pairs.append((watcher, ctrl))

        if not pairs:
            return

        deadline = self.session.clock() + seconds
        while self.session.clock() < deadline:
            for watcher, ctrl in pairs:
                try:
                    watcher.poll(ctrl)
                except WebDriverException as e:
                    self.session.emit_signal(Cat.WATCH, f"Watcher poll failed: {e}", level="warning")
            self.session.sleep(config.WATCH_POLL_INTERVAL_S)

    # -------- reporting --------
    def _log_summary(self) -> None:
        counts = summarize_failures(self.failures)
        if not self.failures:
            self.logger.info("Fill complete: no failures. counters=%r", self.session.counters.snapshot())
            return
        self.logger.warning("Fill complete with %d failure(s): %r", len(self.failures), counts)
        for f in self.failures:
            self.logger.warning(
                "  - [%s] %s (%s): %s",
                f["kind"],
                f["field"],
                f["step_kind"],
                f["reason"],
            )

    def _init_run_dir(self) -> Path:
        """
        Create a per-run output folder under ./runs/<timestamp>/.
        """
        run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        run_dir = Path("runs") / run_id
        (run_dir / "logs").mkdir(parents=True, exist_ok=True)
        return run_dir

    def _dump_json(self, path: Path, payload) -> None:
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False, default=str), encoding="utf-8")

    def _attach_run_file_logger(self, run_dir: Path) -> None:
        logger = self.logger
        log_path = run_dir / "logs" / f"{run_dir.name}.log"

        # Remove the default file handler if present (prevents double logging)
        for h in list(logger.handlers):
            if getattr(h, "name", "") == "default_file":
                h.flush()
                h.close()
                logger.removeHandler(h)

        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

        run_fh = logging.FileHandler(log_path, mode="w", encoding="utf-8")
        run_fh.setLevel(logging.DEBUG)
        run_fh.setFormatter(formatter)
        run_fh.name = "run_file"

        logger.addHandler(run_fh)
        logger.info("File logging redirected to: %s", log_path.as_posix())
