"""
Surface session: one persistent Chromium profile, one Gemini page.

The profile directory keeps the Google login between runs, so the first run
needs a manual sign-in and later runs reuse the cookies.  Only one process
may drive a profile at a time; a second instance fails fast with
SessionLockConflict instead of fighting over the browser.
"""

import logging
import os
from contextlib import contextmanager

from filelock import FileLock, Timeout
from playwright.sync_api import Error as PlaywrightError, sync_playwright

from upscaler.config import PipelineConfig
from upscaler.errors import SessionLockConflict
from upscaler.gemini import GeminiSurface
from upscaler.utils import get_logger

# Gemini is a SPA: domcontentloaded is enough; networkidle is unreliable.
WAIT_STRATEGY = "domcontentloaded"
NAV_TIMEOUT = 60_000

PROFILE_LOCK_NAME = ".upscaler.lock"
# Chromium's own profile locks (SingletonLock, SingletonSocket, SingletonCookie)
_CHROMIUM_LOCK_PREFIX = "Singleton"
_PROFILE_IN_USE_HINTS = ("processsingleton", "profile is already in use", "singletonlock")


def acquire_profile_lock(profile_dir: str) -> FileLock:
    """Take the exclusive per-profile lock or raise SessionLockConflict."""
    lock = FileLock(os.path.join(profile_dir, PROFILE_LOCK_NAME), timeout=0)
    try:
        lock.acquire()
    except Timeout as e:
        raise SessionLockConflict(
            f"Browser profile {profile_dir} is in use by another upscaler run; "
            f"close it before retrying."
        ) from e
    return lock


def cleanup_profile_locks(profile_dir: str, logger: logging.Logger) -> int:
    """
    Remove Chromium Singleton* files left behind by a crashed browser.

    Only safe once we hold the profile lock: no other upscaler can be
    using the profile at that point.
    """
    removed = 0
    for name in os.listdir(profile_dir):
        if not name.startswith(_CHROMIUM_LOCK_PREFIX):
            continue
        try:
            os.remove(os.path.join(profile_dir, name))
            removed += 1
        except FileNotFoundError:
            pass
    if removed:
        logger.info(f"Removed {removed} stale profile lock file(s).")
    return removed


@contextmanager
def open_session(config: PipelineConfig, logger: logging.Logger = None):
    """
    Launch the browser on the persistent profile and yield a GeminiSurface
    on a page that has navigated to the Gemini app.
    """
    logger = logger or get_logger()
    profile_dir = config.browser_data_dir
    os.makedirs(profile_dir, exist_ok=True)

    lock = acquire_profile_lock(profile_dir)
    try:
        if config.force_unlock:
            cleanup_profile_locks(profile_dir, logger)

        with sync_playwright() as p:
            logger.info(f"Launching browser with profile at {profile_dir}")
            try:
                context = p.chromium.launch_persistent_context(
                    profile_dir,
                    headless=config.headless,
                    viewport={"width": 1920, "height": 1080},
                    accept_downloads=True,
                )
            except PlaywrightError as e:
                if any(hint in str(e).lower() for hint in _PROFILE_IN_USE_HINTS):
                    raise SessionLockConflict(
                        f"Chromium reports profile {profile_dir} is already in use; "
                        f"close the other browser before retrying."
                    ) from e
                raise

            try:
                page = context.pages[0] if context.pages else context.new_page()
                logger.info(f"Navigating to {config.surface_url}")
                page.goto(config.surface_url, wait_until=WAIT_STRATEGY, timeout=NAV_TIMEOUT)
                yield GeminiSurface(page, config, logger=logger)
            finally:
                logger.info("Closing browser...")
                try:
                    context.close()
                except PlaywrightError as e:
                    logger.debug(f"Browser close failed: {e}")
    finally:
        lock.release()
