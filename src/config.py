import os
from dotenv import load_dotenv

load_dotenv()

# Page that hosts the controlled form
FILL_BASE_URL = os.getenv("CTL_FILL_URL", "http://localhost:3000")

# Fill plan (YAML/JSON) used by src/main.py
FILL_PLAN_PATH = os.getenv("CTL_FILL_PLAN", "plans/default.yml")

# Explicit wait time for Selenium + Headless mode
WAIT_TIME = int(os.getenv("CTL_FILL_WAIT_TIME", "10"))
IMPLICIT_WAIT = int(os.getenv("CTL_FILL_IMPLICIT_WAIT", "0"))
HEADLESS = os.getenv("HEADLESS", "false").lower() == "true"

# --- Instrumentation / diagnostics ---
LOG_MODE = os.getenv("CTL_FILL_LOG_MODE", "live").lower()  # live | debug | trace
LOG_RATE_LIMITS_S = {
    "WATCH.drain": 2.0,
    "SELECT.poll": 1.0,
}

# --- State injection ---
INJECT_MAX_ATTEMPTS = int(os.getenv("CTL_FILL_INJECT_MAX_ATTEMPTS", "3"))
INJECT_BACKOFF_S = 0.25      # between attempts
INJECT_EVENT_YIELD_S = 0.03  # after the write and after each synthetic event
INJECT_SETTLE_S = 0.12       # reconciliation window before re-reading
QUIET_COOLDOWN_S = 0.5       # quiet flag stays raised this long after an attempt

# --- Structured (date) fields ---
DATE_MIDDAY_HOUR = 12
DATE_EVENT_YIELD_S = 0.05
DATE_MIRROR_REAPPLY_DELAYS_S = (0.15, 0.4)
DATE_DISPLAY_FORMAT = "%d.%m.%Y"
# Accept a same-year substring as a pass (parity with the old userscript only).
DATE_LENIENT_MATCH = os.getenv("CTL_FILL_DATE_LENIENT", "false").lower() == "true"

# --- Cascades ---
CASCADE_COOLDOWN_S = 0.8

# --- Selection pickers ---
SELECT_PANEL_POLL_ATTEMPTS = 10
SELECT_REVEAL_POLL_ATTEMPTS = 15
SELECT_POLL_INTERVAL_S = 0.2

# --- Change watcher ---
WATCH_POLL_INTERVAL_S = 0.3

SELECTORS = {
    "locator": {
        "by_name": "[name='{name}']",
        "labels": "label",
    },
    "date": {
        # nearest ancestor that owns the rendered DD.MM.YYYY text
        "mirror_container": ".date-field, .datepicker, [data-date-field]",
        "mirror_text": ".date-field__display, .datepicker__value, [data-date-display]",
    },
    "select": {
        # current-value display inside a picker container
        "display": ".select__value, [data-select-display]",
        # option panel; usually portalled to <body>
        "panel": ".select__menu, [role='listbox']",
        "option": ".select__option, [role='option']",
        # optional confirmation/overlay shown after choosing an option
        "intermediate_panel": ".select__popover, [data-select-intermediate]",
        # a container counts as a picker when it holds all of these
        "capabilities": [".select__value, [data-select-display]", "input[type='hidden'], [data-select-input]"],
    },
}
