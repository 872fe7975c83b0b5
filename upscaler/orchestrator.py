"""
Batch orchestrator: resumable, strictly sequential processing of a folder.

Flow:
  1. Load resume state from the output directory
  2. List input images, drop the ones already processed, apply the limit
  3. Nothing left → report and return without touching the browser
  4. Open ONE surface session, authenticate once
  5. Run the item pipeline over every pending image, in sorted order
  6. Write the SUMMARY line and release the session
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable

from upscaler.config import PipelineConfig
from upscaler.files import RunLog, ensure_dir, list_images
from upscaler.pipeline import ItemPipeline
from upscaler.state import StateStore
from upscaler.utils import get_logger


@dataclass
class BatchSummary:
    success: int = 0
    failed: int = 0
    skipped: int = 0
    session_opened: bool = False


def pending_items(all_items: list, store: StateStore, limit: int = None) -> list:
    """
    Items still to do.  Only *processed* items are skipped: an item that
    failed in an earlier run gets a fresh set of attempts.
    """
    pending = [item for item in all_items if not store.is_processed(item)]
    return pending[:limit] if limit else pending


def run_batch(
    config: PipelineConfig,
    session_factory: Callable,
    *,
    store: StateStore = None,
    run_log: RunLog = None,
    logger: logging.Logger = None,
    sleep: Callable[[float], None] = time.sleep,
    rng: random.Random = None,
) -> BatchSummary:
    """
    Process every pending image under *config*.

    *session_factory(config)* must return a context manager yielding a
    surface (see upscaler.session.open_session).
    """
    logger = logger or get_logger()
    ensure_dir(config.output_dir)
    store = store or StateStore(config.output_dir, logger=logger)
    run_log = run_log or RunLog(config.output_dir, logger=logger)

    store.load()
    all_items = list_images(config.input_dir)
    todo = pending_items(all_items, store, config.limit)
    summary = BatchSummary(skipped=len(all_items) - len(todo))

    if not todo:
        logger.info("No images to process.")
        return summary

    logger.info("=" * 60)
    logger.info("STARTING BATCH")
    logger.info(f"  Images found:     {len(all_items)}")
    logger.info(f"  Pending this run: {len(todo)}")
    logger.info(f"  Mode:             {config.mode}")
    logger.info(f"  Attempts/image:   {config.retries}")
    logger.info("=" * 60)

    with session_factory(config) as surface:
        summary.session_opened = True
        surface.ensure_authenticated()

        pipeline = ItemPipeline(
            surface, config, store, run_log,
            logger=logger, sleep=sleep, rng=rng,
        )
        for index, item in enumerate(todo, start=1):
            logger.info(f"{'─' * 50}")
            logger.info(
                f"IMAGE {index}/{len(todo)} | success={summary.success} failed={summary.failed}"
            )
            outcome = pipeline.run(item)
            if outcome.succeeded:
                summary.success += 1
            else:
                summary.failed += 1

        run_log.append(f"SUMMARY success={summary.success} failed={summary.failed}")

    logger.info("=" * 60)
    logger.info(f"Done. Success: {summary.success}, Failed: {summary.failed}")
    logger.info("=" * 60)
    return summary
