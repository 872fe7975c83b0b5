"""Shared test fixtures and doubles. No browser is ever launched."""

import os
from contextlib import contextmanager

import pytest

from upscaler.config import PipelineConfig
from upscaler.errors import CapabilityTimeout


class FakeClock:
    """Monotonic clock whose sleep just advances time."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeSurface:
    """
    Stand-in for GeminiSurface.

    *failures* maps an image basename to the stage method that should raise
    on every attempt for that image.
    """

    def __init__(self, failures: dict = None, payload: bytes = b"\x89PNG fake"):
        self.failures = failures or {}
        self.payload = payload
        self.auth_calls = 0
        self.submitted = []
        self.retrieved = []
        self.debug_labels = []
        self._current = None

    def _maybe_fail(self, stage: str) -> None:
        name = os.path.basename(self._current) if self._current else None
        if name is not None and self.failures.get(name) == stage:
            raise CapabilityTimeout(f"{stage} target", 1_000)

    def ensure_authenticated(self):
        self.auth_calls += 1

    def ensure_ready(self):
        self._maybe_fail("ensure_ready")

    def select_mode(self, mode_name):
        self._maybe_fail("select_mode")

    def submit_file(self, path):
        self._current = path
        self.submitted.append(path)
        self._maybe_fail("submit_file")

    def submit_prompt(self, text):
        self._maybe_fail("submit_prompt")

    def send(self):
        self._maybe_fail("send")

    def await_completion(self):
        self._maybe_fail("await_completion")

    def retrieve_result(self, destination):
        self._maybe_fail("retrieve_result")
        with open(destination, "wb") as f:
            f.write(self.payload)
        self.retrieved.append(destination)

    def capture_debug(self, label):
        self.debug_labels.append(label)
        return []


class FakeSessionFactory:
    """Counts session opens and yields the same FakeSurface each time."""

    def __init__(self, surface: FakeSurface = None):
        self.surface = surface or FakeSurface()
        self.opens = 0
        self.closes = 0

    def __call__(self, config):
        @contextmanager
        def _session():
            self.opens += 1
            try:
                yield self.surface
            finally:
                self.closes += 1
        return _session()


@pytest.fixture
def input_dir(tmp_path):
    path = tmp_path / "input"
    path.mkdir()
    return path


@pytest.fixture
def output_dir(tmp_path):
    path = tmp_path / "output"
    path.mkdir()
    return path


@pytest.fixture
def make_config(input_dir, output_dir, tmp_path):
    def _make(**overrides) -> PipelineConfig:
        values = dict(
            input_dir=str(input_dir),
            output_dir=str(output_dir),
            browser_data_dir=str(tmp_path / "profile"),
            surface_url="https://gemini.example/app",
            prompt="make it bigger",
            mode="Fast",
            min_delay_ms=10_000,
            max_delay_ms=15_000,
            retries=3,
            backoff_base_ms=30_000,
            ready_timeout_ms=0,
            auth_timeout_ms=0,
            processing_timeout_ms=0,
            download_timeout_ms=1_000,
        )
        values.update(overrides)
        return PipelineConfig(**values)
    return _make


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


def touch_images(directory, *names):
    paths = []
    for name in names:
        path = directory / name
        path.write_bytes(b"source")
        paths.append(str(path))
    return paths
