"""
Capability probe: wait for the first usable way of addressing a UI element.

The Gemini front-end renders the same affordance in different shapes
depending on transient state (menus, shadow roots, localized labels), so
every lookup is an ordered list of candidate probes.  A probe is a
zero-argument callable that returns a usable handle or None; list order is
priority order.  Waits poll; nothing sleeps longer than the poll interval.
"""

import logging
import time
from typing import Callable, Optional, Sequence

from upscaler.errors import CapabilityTimeout

logger = logging.getLogger("gemini_upscaler")

DEFAULT_POLL_MS = 1_000
DEFAULT_HEARTBEAT_MS = 10_000

Probe = Callable[[], object]


def _try_probe(probe: Probe):
    """Run one probe. Any fault means "not usable"."""
    try:
        return probe()
    except Exception as e:
        logger.debug(f"  probe raised {e.__class__.__name__}: {e}")
        return None


def first_usable(candidates: Sequence[Probe]):
    """One non-blocking pass; return the first usable handle or None."""
    for probe in candidates:
        handle = _try_probe(probe)
        if handle is not None:
            return handle
    return None


def check_any(candidates: Sequence[Probe]) -> bool:
    """Return True if any candidate is usable right now."""
    return first_usable(candidates) is not None


def await_any(
    candidates: Sequence[Probe],
    timeout_ms: int,
    *,
    name: str = "expected UI element",
    poll_interval_ms: int = DEFAULT_POLL_MS,
    heartbeat: Optional[Callable[[float], None]] = None,
    heartbeat_interval_ms: int = DEFAULT_HEARTBEAT_MS,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Block until one of *candidates* is usable and return its handle.

    Every pass walks the full list in order, so a higher-priority candidate
    wins over a lower one that became usable on the same pass.  Raises
    CapabilityTimeout once *timeout_ms* has elapsed without success; the
    final sleep is clipped so the failure lands before
    ``timeout + poll_interval``.

    *heartbeat*, when given, is called with the elapsed seconds at most once
    per *heartbeat_interval_ms* while waiting.  It never affects control flow.
    """
    timeout_s = timeout_ms / 1000
    poll_s = poll_interval_ms / 1000
    start = clock()
    last_beat = start

    while True:
        handle = first_usable(candidates)
        if handle is not None:
            return handle

        now = clock()
        elapsed = now - start
        if elapsed >= timeout_s:
            raise CapabilityTimeout(name, timeout_ms)

        if heartbeat is not None and (now - last_beat) * 1000 >= heartbeat_interval_ms:
            try:
                heartbeat(elapsed)
            except Exception as e:
                logger.debug(f"  heartbeat callback failed: {e}")
            last_beat = now

        sleep(min(poll_s, timeout_s - elapsed))


def visible(factory: Callable[[], object]) -> Probe:
    """
    Adapt a Playwright locator factory into a probe.

    The locator is rebuilt on every call so that a re-rendered DOM is picked
    up; the probe returns ``locator.first`` when it is visible.
    """
    def _probe():
        locator = factory().first
        return locator if locator.is_visible() else None

    return _probe
