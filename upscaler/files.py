"""
File helpers: input discovery, collision-free output naming, the run log.
"""

import logging
import os
from datetime import datetime, timezone

from upscaler.utils import get_logger

SUPPORTED_EXTS = {".jpg", ".jpeg", ".png", ".webp"}
RUN_LOG_NAME = "processing.log"


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def list_images(input_dir: str) -> list:
    """
    Return absolute paths of supported images in *input_dir*, sorted by
    file name.  The extension match is case-insensitive.
    """
    if not os.path.isdir(input_dir):
        raise FileNotFoundError(f"Input directory not found: {input_dir}")
    names = [
        name for name in os.listdir(input_dir)
        if os.path.splitext(name)[1].lower() in SUPPORTED_EXTS
        and os.path.isfile(os.path.join(input_dir, name))
    ]
    return [os.path.abspath(os.path.join(input_dir, name)) for name in sorted(names)]


def build_output_path(output_dir: str, input_path: str) -> str:
    """
    Pick the destination for *input_path*'s result.

    ``<base>_upscaled<ext>`` first, then ``_upscaled_2``, ``_upscaled_3`` …
    The first name not already on disk wins, so earlier results are never
    overwritten.
    """
    base, ext = os.path.splitext(os.path.basename(input_path))
    candidate = os.path.join(output_dir, f"{base}_upscaled{ext}")
    counter = 2
    while os.path.exists(candidate):
        candidate = os.path.join(output_dir, f"{base}_upscaled_{counter}{ext}")
        counter += 1
    return candidate


class RunLog:
    """
    Append-only event log kept next to the results.

    One line per event: ``[<ISO-8601 UTC>] <text>``.  Every line is also
    sent to the project logger so the console shows the same events.
    """

    def __init__(self, output_dir: str, logger: logging.Logger = None):
        self.path = os.path.join(output_dir, RUN_LOG_NAME)
        self._logger = logger or get_logger()

    def append(self, line: str) -> None:
        timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        ensure_dir(os.path.dirname(self.path) or ".")
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(f"[{timestamp}] {line}\n")
        if line.startswith("ERROR"):
            self._logger.warning(line)
        else:
            self._logger.info(line)
