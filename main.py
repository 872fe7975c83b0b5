"""
Gemini Batch Upscaler: entry point

Usage:
    python main.py
    python main.py --config path/to/config.yaml
    python main.py --input ~/frames/ --output ./output/ --limit 10
"""

import argparse
import logging
import os
import sys

from playwright.sync_api import Error as PlaywrightError

from upscaler.config import load_config
from upscaler.errors import CapabilityTimeout, SessionLockConflict
from upscaler.orchestrator import run_batch
from upscaler.session import open_session
from upscaler.utils import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Upscale a folder of images through the Gemini web app"
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to config.yaml (default: ./config.yaml if present)",
    )
    parser.add_argument("--input", dest="input_dir", help="Folder of source images")
    parser.add_argument("--output", dest="output_dir", help="Folder for results, state and run log")
    parser.add_argument("--browser-data", dest="browser_data_dir", help="Persistent browser profile folder")
    parser.add_argument("--url", dest="surface_url", help="Gemini app URL")
    parser.add_argument("--prompt", help="Prompt sent with every image")
    parser.add_argument("--mode", help="Gemini mode to select (e.g. Fast)")
    parser.add_argument("--limit", type=int, help="Process at most N pending images")
    parser.add_argument("--min-delay-ms", type=int, help="Minimum pause between images")
    parser.add_argument("--max-delay-ms", type=int, help="Maximum pause between images")
    parser.add_argument("--retries", type=int, help="Attempts per image")
    parser.add_argument("--backoff-base-ms", type=int, help="First retry backoff (doubles each attempt)")
    parser.add_argument("--ready-timeout-ms", type=int, help="Timeout for the prompt input to appear")
    parser.add_argument("--auth-timeout-ms", type=int, help="How long to wait for a manual login")
    parser.add_argument("--processing-timeout-ms", type=int, help="Timeout for Gemini to finish an image")
    parser.add_argument("--download-timeout-ms", type=int, help="Timeout for the download to start")
    parser.add_argument("--headless", action="store_true", default=None, help="Run the browser headless")
    parser.add_argument("--debug", action="store_true", default=None,
                        help="Save screenshot/HTML/URL of the page on every failed attempt")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only log warnings and errors")
    parser.add_argument("--no-force-unlock", dest="force_unlock", action="store_false", default=None,
                        help="Keep stale Chromium profile lock files")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    overrides = {k: v for k, v in vars(args).items() if k not in ("config", "quiet")}
    if args.quiet:
        overrides["verbose"] = False

    try:
        config = load_config(args.config, overrides)
    except (FileNotFoundError, ValueError) as e:
        logging.basicConfig(level=logging.INFO)
        logging.getLogger("gemini_upscaler").error(f"Configuration error: {e}")
        return 1

    logger = setup_logging(log_dir=os.path.join(config.output_dir, "logs"), verbose=config.verbose)

    logger.info("Configuration loaded:")
    logger.info(f"  Input:            {config.input_dir}")
    logger.info(f"  Output:           {config.output_dir}")
    logger.info(f"  Browser profile:  {config.browser_data_dir}")
    logger.info(f"  Mode:             {config.mode}")
    logger.info(f"  Delay:            {config.min_delay_ms}-{config.max_delay_ms}ms")
    logger.info(f"  Retries:          {config.retries}")
    logger.info(f"  Limit:            {config.limit or 'none'}")
    logger.info(f"  Headless:         {config.headless}")

    try:
        run_batch(config, lambda cfg: open_session(cfg, logger=logger), logger=logger)
    except SessionLockConflict as e:
        logger.error(f"🛑 {e}")
        return 1
    except FileNotFoundError as e:
        logger.error(f"Startup error: {e}")
        return 1
    except CapabilityTimeout as e:
        # Only authentication can time out outside an item attempt
        logger.error(f"Login not completed: {e}")
        return 1
    except PlaywrightError as e:
        logger.error(f"Browser startup failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("\nCtrl+C detected. Progress so far is saved; rerun to resume.")
        return 130

    # Items that ended up in "failed" are reported, not escalated
    return 0


if __name__ == "__main__":
    sys.exit(main())
