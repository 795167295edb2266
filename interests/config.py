"""
Configuration and defaults for interest classification and aggregation.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml


PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_STATE_PATH = DATA_DIR / "interests_state.json"

# Rule table sentinels
ANY_KEY = "__ANY"
HOME_KEY = "__HOME"
RESERVED_MARKER = "__"

# Only this rule table format is installed by the worker
DFR_DATA_TYPE = "dfr"

# Namespace that turns on the hierarchical (LWCA) classifier
LWCA_NAMESPACE = "58-cat"

UNCATEGORIZED = "uncategorized"

# Rule keys and URL chunks are split on whitespace and hyphen runs
TOKEN_SPLITTER = re.compile(r"[\s-]+")


def get_state_path() -> Path:
    """Persisted buffer state location (INTERESTS_STATE_PATH overrides)."""
    raw = (os.environ.get("INTERESTS_STATE_PATH") or "").strip()
    if raw:
        return Path(raw).expanduser().resolve()
    return DEFAULT_STATE_PATH


@dataclass
class WorkerConfig:
    """Configuration handed to the classification worker at bootstrap."""

    namespace: str | None = None
    region_code: str | None = None

    # Rule table (DFR mapping) and its declared format
    interests_data: dict | None = None
    interests_data_type: str = DFR_DATA_TYPE

    # Statistical classifier model and tokenizer stopwords
    classifier_model: dict | None = None
    url_stopwords: list[str] | None = None

    def to_bootstrap_message(self) -> dict:
        return {
            "workerNamespace": self.namespace,
            "workerRegionCode": self.region_code,
            "interestsData": self.interests_data,
            "interestsDataType": self.interests_data_type,
            "interestsClassifierModel": self.classifier_model,
            "interestsUrlStopwords": self.url_stopwords,
        }


@dataclass
class BufferConfig:
    """Configuration for the daily interests buffer."""

    state_path: Path = field(default_factory=get_state_path)
    # Root container key inside the persisted state
    root_key: str = "dailyInterests"
    request_timeout: float = 10.0  # seconds to wait for a classification response


def load_run_config(path: str | Path) -> dict:
    """Load a run configuration from JSON or YAML."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Run config not found: {path}")

    content = p.read_text(encoding="utf-8").strip()
    if not content:
        return {}

    try:
        if p.suffix.lower() in (".yaml", ".yml"):
            result = yaml.safe_load(content)
        else:
            result = json.loads(content)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid run config {path}: {exc}") from exc
    if result and not isinstance(result, dict):
        raise ValueError(f"Run config must be a mapping: {path}")
    return result or {}


def load_data_file(path: str | Path):
    """Load a rule table, model or stopword list from a JSON or YAML file."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Data file not found: {path}")
    suffix = p.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return yaml.safe_load(p.read_text(encoding="utf-8"))
    if suffix == ".json":
        return json.loads(p.read_text(encoding="utf-8"))
    raise ValueError(f"Unsupported data file type: {p.suffix} (use .json, .yaml or .yml)")


def apply_run_config(args, cfg: dict, provided_flags: set[str]):
    """Apply run config to parsed args, respecting CLI overrides."""
    if not cfg:
        return args

    aliases = {
        "rules_file": "rules",
        "model_file": "model",
        "stopwords_file": "stopwords",
        "state_path": "state",
        "region_code": "region",
    }

    for key, value in cfg.items():
        arg_key = aliases.get(key, key)
        if arg_key in ("command", "func") or arg_key not in args.__dict__:
            continue
        if arg_key in provided_flags:
            continue
        setattr(args, arg_key, value)
    return args
