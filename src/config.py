"""Project configuration: repo-root discovery and `config.yaml` parsing."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .matrix_factorization.train import MFTrainConfig


@dataclass(frozen=True)
class DatasetConfig:
    raw_dir: Path
    format: str = "ml-100k"


@dataclass(frozen=True)
class AppConfig:
    dataset: DatasetConfig
    mf: MFTrainConfig
    seed: int = 42


def get_repo_root() -> Path:
    """Return repo root by searching upwards (from cwd, then this file) for `config.yaml` or `.git`."""
    for start in (Path.cwd().resolve(), Path(__file__).resolve().parent):
        for candidate in (start, *start.parents):
            if (candidate / "config.yaml").is_file() or (candidate / ".git").exists():
                return candidate
    raise FileNotFoundError("Could not locate repo root (expected `config.yaml` or `.git`).")


def _section(cfg_yaml: dict[str, Any], name: str) -> dict[str, Any]:
    value = cfg_yaml.get(name, {})
    return value if isinstance(value, dict) else {}


def mf_config_from_mapping(raw: dict[str, Any], **overrides: Any) -> MFTrainConfig:
    """Build an `MFTrainConfig` from a mapping, ignoring unknown keys; non-None overrides win."""
    known = {f.name for f in fields(MFTrainConfig)}
    values = {k: v for k, v in raw.items() if k in known}
    values.update({k: v for k, v in overrides.items() if v is not None})
    return MFTrainConfig(**values)


def load_config(config_path: Path | None = None, *, repo_root: Path | None = None) -> AppConfig:
    """Read `config.yaml`; a missing file yields the defaults."""
    repo_root = repo_root or get_repo_root()
    config_path = Path(config_path) if config_path is not None else repo_root / "config.yaml"
    if not config_path.is_absolute():
        config_path = (repo_root / config_path).resolve()

    cfg_yaml: Any = {}
    if config_path.exists():
        cfg_yaml = yaml.safe_load(config_path.read_text()) or {}
    if not isinstance(cfg_yaml, dict):
        raise ValueError("config.yaml must be a mapping")

    dataset_cfg = _section(cfg_yaml, "dataset")
    raw_dir = Path(str(dataset_cfg.get("raw_dir", "data/raw")))
    if not raw_dir.is_absolute():
        raw_dir = (repo_root / raw_dir).resolve()

    return AppConfig(
        dataset=DatasetConfig(raw_dir=raw_dir, format=str(dataset_cfg.get("format", "ml-100k"))),
        mf=mf_config_from_mapping(_section(cfg_yaml, "mf")),
        seed=int(cfg_yaml.get("seed", 42)),
    )
