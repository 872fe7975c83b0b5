"""
Configuration: config.yaml values, documented defaults, CLI overrides.

Resolution order (later wins):
  1. built-in defaults (applied with setdefault)
  2. config.yaml, when present
  3. command-line overrides

The result is frozen into a PipelineConfig that no component mutates.
"""

import os
from dataclasses import dataclass, fields
from typing import Optional

import yaml

from upscaler.utils import resolve_home_path


DEFAULT_CONFIG_NAME = "config.yaml"

DEFAULT_PROMPT = (
    "Can you please increase the resolution of this photo "
    "from 1920x1080 to be 4000x2250"
)

_PATH_KEYS = ("input_dir", "output_dir", "browser_data_dir")
_MS_KEYS = (
    "min_delay_ms",
    "max_delay_ms",
    "backoff_base_ms",
    "ready_timeout_ms",
    "auth_timeout_ms",
    "processing_timeout_ms",
    "download_timeout_ms",
)


@dataclass(frozen=True)
class PipelineConfig:
    input_dir: str
    output_dir: str
    browser_data_dir: str
    surface_url: str
    prompt: str
    mode: str
    min_delay_ms: int
    max_delay_ms: int
    retries: int
    backoff_base_ms: int
    ready_timeout_ms: int
    auth_timeout_ms: int
    processing_timeout_ms: int
    download_timeout_ms: int
    limit: Optional[int] = None
    headless: bool = False
    verbose: bool = True
    debug: bool = False
    force_unlock: bool = True

    @classmethod
    def from_dict(cls, config: dict) -> "PipelineConfig":
        """Build from a validated config dict, ignoring unknown keys."""
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in config.items() if k in names})


def apply_defaults(config: dict) -> dict:
    """Fill every missing key with its documented default."""
    config.setdefault("input_dir", "~/Pictures/upscale-input/")
    config.setdefault("output_dir", "./output/upscaled_images/")
    config.setdefault("browser_data_dir", "./browser-data")
    config.setdefault("surface_url", "https://gemini.google.com/app")
    config.setdefault("prompt", DEFAULT_PROMPT)
    config.setdefault("mode", "Fast")

    # Pacing between images
    config.setdefault("min_delay_ms", 10_000)
    config.setdefault("max_delay_ms", 15_000)

    # Retry policy
    config.setdefault("retries", 3)
    config.setdefault("backoff_base_ms", 30_000)

    # Per-stage timeouts.  Auth is long on purpose: a human may be logging in.
    config.setdefault("ready_timeout_ms", 10_000)
    config.setdefault("auth_timeout_ms", 15 * 60 * 1000)
    config.setdefault("processing_timeout_ms", 5 * 60 * 1000)
    config.setdefault("download_timeout_ms", 2 * 60 * 1000)

    config.setdefault("limit", None)
    config.setdefault("headless", False)
    config.setdefault("verbose", True)
    config.setdefault("debug", False)
    config.setdefault("force_unlock", True)
    return config


def validate_config(config: dict) -> dict:
    """Validate a defaulted config dict in place. Raises ValueError."""
    for key in _PATH_KEYS:
        value = config.get(key)
        if not value or not isinstance(value, str):
            raise ValueError(f"Config key '{key}' must be a non-empty path, got: {value!r}")
        config[key] = resolve_home_path(value)

    for key in _MS_KEYS:
        value = config[key]
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"{key} must be an int >= 0, got: {value!r}")

    if config["min_delay_ms"] > config["max_delay_ms"]:
        raise ValueError(
            f"min_delay_ms ({config['min_delay_ms']}) must not exceed "
            f"max_delay_ms ({config['max_delay_ms']})"
        )

    retries = config["retries"]
    if isinstance(retries, bool) or not isinstance(retries, int) or retries < 1:
        raise ValueError(f"retries must be an int >= 1, got: {retries!r}")

    # 0 means "no limit", same as null
    limit = config["limit"]
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 0):
        raise ValueError(f"limit must be an int >= 0 or null, got: {limit!r}")
    config["limit"] = limit or None

    for key in ("prompt", "mode", "surface_url"):
        if not isinstance(config[key], str) or not config[key].strip():
            raise ValueError(f"Config key '{key}' must be a non-empty string")

    for key in ("headless", "verbose", "debug", "force_unlock"):
        config[key] = bool(config[key])

    return config


def load_config(config_path: str = None, overrides: dict = None) -> PipelineConfig:
    """
    Load config.yaml (optional), apply CLI *overrides*, fill defaults and
    validate.

    An explicitly given *config_path* must exist; the default
    ./config.yaml is only read when present.  Override values of None mean
    "not given on the command line" and are skipped.
    """
    config: dict = {}
    if config_path is not None:
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        config_path = DEFAULT_CONFIG_NAME if os.path.exists(DEFAULT_CONFIG_NAME) else None

    if config_path is not None:
        with open(config_path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {config_path} must contain a mapping")
        config.update(loaded)

    for key, value in (overrides or {}).items():
        if value is not None:
            config[key] = value

    return PipelineConfig.from_dict(validate_config(apply_defaults(config)))
