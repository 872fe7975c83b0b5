"""
Utility functions: logging setup, debug artifact capture, path helpers.
"""

import os
import re
import logging
from datetime import datetime


LOGGER_NAME = "gemini_upscaler"
CONSOLE_FORMAT = "[%(asctime)s] %(levelname)-8s %(message)s"
FILE_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def resolve_home_path(path: str) -> str:
    """Expand a leading ``~/`` to the user's home directory."""
    if not path:
        return path
    if path.startswith("~/") or path == "~":
        return os.path.expanduser(path)
    return path


def setup_logging(log_dir: str, verbose: bool = True, name: str = LOGGER_NAME) -> logging.Logger:
    """
    Configure and return the project logger.

    The console shows INFO (WARNING when not *verbose*).  A DEBUG trace of
    the whole run goes to ``<log_dir>/run_<timestamp>.log``, next to the
    per-image run log in the output directory.
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    # Prevent duplicate handlers on repeated calls
    if logger.handlers:
        return logger

    console = logging.StreamHandler()
    console.setLevel(logging.INFO if verbose else logging.WARNING)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    logger.addHandler(console)

    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, f"run_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log")
    trace = logging.FileHandler(log_file, encoding="utf-8")
    trace.setLevel(logging.DEBUG)
    trace.setFormatter(logging.Formatter(FILE_FORMAT))
    logger.addHandler(trace)

    logger.debug(f"Trace log: {log_file}")
    return logger


# ── Debug artifacts ──────────────────────────────────────────────────────

def _safe_label(label: str) -> str:
    return re.sub(r"[^\w\-]", "_", label)[:80]


def capture_diagnostics(page, label: str, output_dir: str, logger: logging.Logger = None) -> list:
    """
    Save whatever diagnostic data the page still yields.

    Writes, each independently and best-effort:
      debug-<label>-<timestamp>.png       full-page screenshot
      debug-<label>-<timestamp>.html      page HTML
      debug-<label>-<timestamp>.url.txt   current URL

    Returns the list of files actually written.  Never raises.
    """
    logger = logger or get_logger()
    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")
    base = f"debug-{_safe_label(label)}-{timestamp}"
    written = []

    try:
        os.makedirs(output_dir, exist_ok=True)
    except OSError as e:
        logger.warning(f"Cannot create debug directory {output_dir}: {e}")
        return written

    screenshot_path = os.path.join(output_dir, f"{base}.png")
    try:
        page.screenshot(path=screenshot_path, full_page=True, timeout=5_000)
        written.append(screenshot_path)
    except Exception as e:
        logger.warning(f"Debug screenshot failed: {e}")

    html_path = os.path.join(output_dir, f"{base}.html")
    try:
        html = page.content()
        with open(html_path, "w", encoding="utf-8") as f:
            f.write(html)
        written.append(html_path)
    except Exception as e:
        logger.warning(f"Debug HTML dump failed: {e}")

    url_path = os.path.join(output_dir, f"{base}.url.txt")
    try:
        url = page.url
        with open(url_path, "w", encoding="utf-8") as f:
            f.write(url)
        written.append(url_path)
    except Exception as e:
        logger.warning(f"Debug URL dump failed: {e}")

    logger.info(f"📸 Saved debug artifacts: {base}.*")
    return written
