import logging

from selenium.common.exceptions import WebDriverException

from . import config
from .ctl_fill.session import FillSession
from .ctl_fill.context import build_context
from .ctl_fill.controller import FillController


def main():

    logger = setup_logging()

    try:
        session = FillSession(logger)
    except WebDriverException as e:
        logger.error("Could not start the browser: %s", e)
        return 1

    # Build shared components ONCE
    ctx = build_context(session)
    controller = FillController(ctx)

    try:
        failures = controller.control_process(config.FILL_PLAN_PATH)
    except Exception as e:
        logger.error("Well that seems to have failed. Message %r.", e)
        return 1
    finally:
        session.close()

    return 2 if failures else 0

def setup_logging(verbose_console: bool = False):
    logger = logging.getLogger("ctl_fill")
    logger.setLevel(logging.DEBUG)  # emit everything; handlers will filter

    # Clear existing handlers if this is called multiple times
    logger.handlers.clear()
    logger.propagate = False  # don't double-log via root

    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    formatter = logging.Formatter(fmt)

    # --- Console: WARNING (or DEBUG if verbose_console=True) ---
    console_handler = logging.StreamHandler()
    console_level = logging.DEBUG if verbose_console else logging.WARNING
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)

    # --- File: DEBUG, truncated each run ---
    file_handler = logging.FileHandler("ctl_fill.log", mode="w", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    file_handler.name = "default_file"

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    return logger

if __name__ == "__main__":
    raise SystemExit(main())
