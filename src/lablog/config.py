"""Configuration loading for lablog.

Supports three tiers:
1. Simple config via .toml or .json - most users
2. Python config via .py - power users with record hooks
3. Constructing LablogConfig directly - library callers and tests
"""

from __future__ import annotations

import importlib.util
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

# Python 3.11+ has tomllib in stdlib; fall back to tomli for older versions
try:
    import tomllib  # Python 3.11+
except ImportError:
    try:
        import tomli as tomllib  # Python <3.11
    except ImportError:  # pragma: no cover
        tomllib = None

from .scm import DEFAULT_TIMEOUT

HOOK_NAMES = ("pre_record", "post_record")


def default_data_dir() -> Path:
    return Path.home() / ".lablog"


@dataclass
class LablogConfig:
    """Settings passed explicitly to the engine, store and commit hook."""

    data_dir: Path = field(default_factory=default_data_dir)

    # Commit hook
    scm: str = "git"
    auto_commit: bool = False
    auto_push: bool = False
    hook_timeout: float = DEFAULT_TIMEOUT

    lock_timeout: float = 10.0
    log_level: str = "WARNING"

    # Hooks (populated from Python config)
    hooks: dict[str, Callable] = field(default_factory=dict)


def load_toml_config(path: Path) -> dict[str, Any]:
    """Load configuration from TOML file."""
    if tomllib is None:
        raise ImportError("tomli required for TOML config: pip install tomli")
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_json_config(path: Path) -> dict[str, Any]:
    """Load configuration from JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_python_config(path: Path) -> tuple[dict[str, Any], dict[str, Callable]]:
    """Load configuration from Python file.

    Returns:
        Tuple of (config_dict, hooks_dict)

    Convention:
        - CONFIG dict or config dict for static configuration
        - Functions named hook_pre_record / hook_post_record become hooks
    """
    spec = importlib.util.spec_from_file_location("lablog_config", path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load Python config from {path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules["lablog_config"] = module
    spec.loader.exec_module(module)

    config_dict = {}
    if hasattr(module, "CONFIG"):
        config_dict = module.CONFIG
    elif hasattr(module, "config"):
        config_dict = module.config

    hooks = {}
    for name in dir(module):
        if name.startswith("hook_"):
            hook_name = name[5:]  # Remove "hook_" prefix
            if hook_name in HOOK_NAMES:
                hooks[hook_name] = getattr(module, name)

    return config_dict, hooks


def dict_to_config(data: dict[str, Any], base_dir: Optional[Path] = None) -> LablogConfig:
    """Convert dictionary to LablogConfig.

    A relative data_dir is resolved against ``base_dir``.

    Raises:
        ValueError: If data_dir is given but blank
    """
    config = LablogConfig()

    if "lablog" in data:
        section = data["lablog"]
        if "data_dir" in section:
            if not str(section["data_dir"] or "").strip():
                raise ValueError("data_dir can not be empty")
            data_dir = Path(section["data_dir"]).expanduser()
            if not data_dir.is_absolute() and base_dir is not None:
                data_dir = base_dir / data_dir
            config.data_dir = data_dir

    if "scm" in data:
        scm = data["scm"]
        if "backend" in scm:
            config.scm = scm["backend"]
        if "auto_commit" in scm:
            config.auto_commit = bool(scm["auto_commit"])
        if "auto_push" in scm:
            config.auto_push = bool(scm["auto_push"])
        if "timeout" in scm:
            config.hook_timeout = float(scm["timeout"])

    if "locking" in data:
        if "timeout" in data["locking"]:
            config.lock_timeout = float(data["locking"]["timeout"])

    if "logging" in data:
        if "level" in data["logging"]:
            config.log_level = str(data["logging"]["level"]).upper()

    return config


def find_config_file(directory: Path) -> Optional[Path]:
    """Find configuration file in a directory.

    Search order:
    1. lablog_config.py (most flexible)
    2. lablog_config.toml
    3. lablog_config.json
    4. .lablog.toml
    5. .lablog.json
    """
    candidates = [
        "lablog_config.py",
        "lablog_config.toml",
        "lablog_config.json",
        ".lablog.toml",
        ".lablog.json",
    ]

    for name in candidates:
        path = directory / name
        if path.exists():
            return path

    return None


def load_config(
    config_path: Optional[Path] = None,
    search_dirs: Optional[list[Path]] = None,
) -> LablogConfig:
    """Load lablog configuration.

    Args:
        config_path: Optional explicit path to config file
        search_dirs: Directories searched in order when no path is given

    Returns:
        LablogConfig instance
    """
    if config_path is None:
        for directory in search_dirs or []:
            config_path = find_config_file(directory)
            if config_path is not None:
                break

    if config_path is None:
        # No config file - use defaults
        return LablogConfig()

    base_dir = config_path.parent
    suffix = config_path.suffix.lower()

    if suffix == ".py":
        config_dict, hooks = load_python_config(config_path)
        config = dict_to_config(config_dict, base_dir)
        config.hooks = hooks
        return config

    elif suffix == ".toml":
        return dict_to_config(load_toml_config(config_path), base_dir)

    elif suffix == ".json":
        return dict_to_config(load_json_config(config_path), base_dir)

    else:
        raise ValueError(f"Unsupported config file type: {suffix}")
