"""
Item pipeline: drive one image through the Gemini stages with retries.

Per attempt:
  ensure-ready → select-mode → upload → prompt → send → processing → download

Any stage fault ends the attempt.  The failing stage is logged, debug
artifacts are captured when enabled, and the item either backs off
(backoff_base_ms * 2^(attempt-1)) and starts over from ensure-ready, or,
on the last attempt, is recorded as failed.  The resume state is only
touched on a terminal outcome, never mid-attempt.
"""

import logging
import os
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

from upscaler.config import PipelineConfig
from upscaler.errors import SessionLockConflict
from upscaler.files import RunLog, build_output_path
from upscaler.state import StateStore
from upscaler.utils import get_logger

# ── Stage labels ─────────────────────────────────────────────────────────
STAGE_INIT       = "init"
STAGE_READY      = "ensure-ready"
STAGE_MODE       = "select-mode"
STAGE_UPLOAD     = "upload"
STAGE_PROMPT     = "prompt"
STAGE_SEND       = "send"
STAGE_PROCESSING = "processing"
STAGE_DOWNLOAD   = "download"


@dataclass
class Attempt:
    """One try at one image. Never persisted."""
    item: str
    number: int
    stage: str = STAGE_INIT
    error: Optional[BaseException] = None

    @property
    def label(self) -> str:
        return f"{os.path.basename(self.item)}-attempt-{self.number}-{self.stage}"


@dataclass
class ItemOutcome:
    item: str
    succeeded: bool
    attempts: int
    output_path: Optional[str] = None
    last_error: Optional[str] = None


def random_delay_ms(min_ms: int, max_ms: int, rng: random.Random) -> int:
    """Uniform pause in [min_ms, max_ms]; min_ms when the range is empty."""
    if min_ms >= max_ms:
        return min_ms
    return int(rng.uniform(min_ms, max_ms))


def backoff_ms(base_ms: int, attempt: int) -> int:
    """Exponential backoff for a 1-indexed attempt number."""
    return base_ms * 2 ** (attempt - 1)


class ItemPipeline:
    """
    Runs the stage sequence for one image at a time against a surface.

    The surface is anything with the GeminiSurface stage methods; tests
    pass a double.
    """

    def __init__(
        self,
        surface,
        config: PipelineConfig,
        store: StateStore,
        run_log: RunLog,
        *,
        logger: logging.Logger = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random = None,
    ):
        self.surface = surface
        self.config = config
        self.store = store
        self.run_log = run_log
        self.log = logger or get_logger()
        self._sleep = sleep
        self._rng = rng or random.Random()

    def run(self, item: str) -> ItemOutcome:
        name = os.path.basename(item)
        retries = self.config.retries
        last_error = None

        for number in range(1, retries + 1):
            attempt = Attempt(item=item, number=number)
            self.log.info(f"Processing {name} (attempt {number}/{retries})")
            try:
                output_path = self._run_stages(attempt)
            except SessionLockConflict:
                raise
            except Exception as e:
                attempt.error = last_error = e
                self._record_error(attempt)
                if number < retries:
                    wait = backoff_ms(self.config.backoff_base_ms, number)
                    self.log.info(f"  Backing off {wait / 1000:.0f}s before retrying {name}...")
                    self._sleep(wait / 1000)
                continue

            self.store.mark_processed(item)
            self.run_log.append(f"SUCCESS {name} -> {output_path}")

            delay = random_delay_ms(self.config.min_delay_ms, self.config.max_delay_ms, self._rng)
            self.log.info(f"Waiting {delay}ms before next image...")
            self._sleep(delay / 1000)
            return ItemOutcome(item=item, succeeded=True, attempts=number, output_path=output_path)

        self.store.mark_failed(item)
        self.log.error(f"❌ {name} failed after {retries} attempt(s)")
        return ItemOutcome(
            item=item, succeeded=False, attempts=retries, last_error=_describe(last_error),
        )

    def _run_stages(self, attempt: Attempt) -> str:
        surface = self.surface

        attempt.stage = STAGE_READY
        surface.ensure_ready()
        attempt.stage = STAGE_MODE
        surface.select_mode(self.config.mode)
        attempt.stage = STAGE_UPLOAD
        surface.submit_file(attempt.item)
        attempt.stage = STAGE_PROMPT
        surface.submit_prompt(self.config.prompt)
        attempt.stage = STAGE_SEND
        surface.send()
        attempt.stage = STAGE_PROCESSING
        surface.await_completion()

        attempt.stage = STAGE_DOWNLOAD
        output_path = build_output_path(self.config.output_dir, attempt.item)
        surface.retrieve_result(output_path)
        return output_path

    def _record_error(self, attempt: Attempt) -> None:
        name = os.path.basename(attempt.item)
        self.run_log.append(
            f"ERROR {name} attempt {attempt.number}: "
            f"step={attempt.stage} {_describe(attempt.error)}"
        )
        if self.config.debug:
            capture = getattr(self.surface, "capture_debug", None)
            if capture is not None:
                capture(attempt.label)


def _describe(error: BaseException) -> str:
    message = str(error).strip().splitlines()[0] if str(error).strip() else ""
    return f"{error.__class__.__name__}: {message}" if message else error.__class__.__name__
