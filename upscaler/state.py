"""
Resume state: which images are done and which exhausted their retries.

The state file lives in the output directory:
{
  "processed": ["/abs/path/a.jpg", ...],
  "failed":    ["/abs/path/b.jpg", ...]
}

Loaded once at start, rewritten after every terminal outcome so a crash
loses at most the image that was in flight.  A missing or corrupt file
degrades to an empty state; it never stops the run.
"""

import json
import logging
import os
from dataclasses import dataclass, field

from filelock import FileLock

from upscaler.errors import MalformedState
from upscaler.utils import get_logger

STATE_FILE_NAME = "processing-state.json"


@dataclass
class ResumeState:
    processed: list = field(default_factory=list)
    failed: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"processed": list(self.processed), "failed": list(self.failed)}


def parse_state(raw: str) -> ResumeState:
    """
    Parse a state record.  Raises MalformedState when the text is not JSON
    or the root is not an object.  A field of the wrong type is dropped to
    an empty list rather than rejecting the whole record.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedState(f"State file is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedState(f"State root must be an object, got {type(data).__name__}")

    def _ids(key: str) -> list:
        value = data.get(key)
        if not isinstance(value, list):
            return []
        # Keep first occurrence order, strings only
        seen, ids = set(), []
        for item in value:
            if isinstance(item, str) and item not in seen:
                seen.add(item)
                ids.append(item)
        return ids

    processed = _ids("processed")
    done = set(processed)
    failed = [item for item in _ids("failed") if item not in done]
    return ResumeState(processed=processed, failed=failed)


class StateStore:
    """
    Owner of the on-disk ResumeState.

    mark_processed()/mark_failed() update the working copy and flush it
    synchronously before returning.
    """

    def __init__(self, output_dir: str, logger: logging.Logger = None):
        self._filepath = os.path.join(output_dir, STATE_FILE_NAME)
        self._lock = FileLock(self._filepath + ".lock", timeout=30)
        self._logger = logger or get_logger()
        self.state = ResumeState()

    @property
    def path(self) -> str:
        return self._filepath

    # ── Public API ────────────────────────────────────────────────────────

    def load(self) -> ResumeState:
        """Read the state file into the working copy and return it."""
        self.state = self._read()
        self._logger.info(
            f"Resume state: {len(self.state.processed)} processed, "
            f"{len(self.state.failed)} failed"
        )
        return self.state

    def is_processed(self, item: str) -> bool:
        return item in self.state.processed

    def mark_processed(self, item: str) -> None:
        """Record a success.  A previously failed item moves over."""
        if item in self.state.failed:
            self.state.failed.remove(item)
        if item not in self.state.processed:
            self.state.processed.append(item)
        self.save()

    def mark_failed(self, item: str) -> None:
        """Record an item that exhausted its retries in this run."""
        if item in self.state.processed:
            return
        if item not in self.state.failed:
            self.state.failed.append(item)
        self.save()

    def save(self) -> None:
        with self._lock:
            self._write(self.state.to_dict())

    # ── Private helpers ───────────────────────────────────────────────────

    def _read(self) -> ResumeState:
        if not os.path.exists(self._filepath):
            return ResumeState()
        try:
            with self._lock:
                with open(self._filepath, "r", encoding="utf-8") as f:
                    raw = f.read()
            return parse_state(raw)
        except (MalformedState, OSError, UnicodeDecodeError) as e:
            self._logger.warning(f"State file corrupt or unreadable ({e}), starting fresh")
            return ResumeState()

    def _write(self, data: dict) -> None:
        """Write state atomically. Caller holds lock."""
        directory = os.path.dirname(self._filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp = self._filepath + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self._filepath)
