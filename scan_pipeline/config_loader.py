"""
Configuration loader for the identification cascade.

Loads all configs from YAML/JSON files and computes deterministic fingerprint
for drift detection.
"""
import yaml
import json
import hashlib
from dataclasses import dataclass
from typing import Any, Dict, List
from pathlib import Path

from .schemas import StageName

DEFAULT_CONFIG_ROOT = Path(__file__).parent / "configs"


@dataclass
class CascadeConfig:
    """Unified configuration with version tracking."""
    stage_thresholds: Dict[str, Any]
    profiles: Dict[str, List[StageName]]
    safety_rules: Dict[str, Any]
    matching: Dict[str, Any]
    config_version: str
    config_fingerprint: str

    def stage(self, stage_name: StageName) -> Dict[str, Any]:
        """Threshold block for one stage (empty dict when absent)."""
        return dict(self.stage_thresholds.get(stage_name.value) or {})

    def profile(self, name: str) -> List[StageName]:
        """
        Ordered stage list for a named profile.

        Raises:
            KeyError: If the profile is not defined
        """
        if name not in self.profiles:
            raise KeyError(f"Unknown cascade profile: {name!r} (known: {sorted(self.profiles)})")
        return list(self.profiles[name])

    @property
    def min_ingredient_chars(self) -> int:
        return int(self.stage_thresholds.get("min_ingredient_chars", 10))


def _load_yaml(path: Path) -> Any:
    """Load YAML file."""
    with open(path, 'r') as f:
        return yaml.safe_load(f) or {}


def _load_json(path: Path) -> Any:
    """Load JSON file."""
    with open(path, 'r') as f:
        return json.load(f)


def load_config_file(path: Path) -> Any:
    """
    Load one YAML or JSON file.

    Raises:
        ValueError: If the file type is not supported
    """
    if path.suffix in ('.yml', '.yaml'):
        return _load_yaml(path)
    if path.suffix == '.json':
        return _load_json(path)
    raise ValueError(f"Unknown config file type: {path}")


def _parse_profiles(raw: Dict[str, Any]) -> Dict[str, List[StageName]]:
    profiles = {}
    for name, stages in raw.items():
        try:
            profiles[name] = [StageName(s) for s in (stages or [])]
        except ValueError as e:
            raise ValueError(f"Profile {name!r} lists an unknown stage: {e}") from e
    if "default" not in profiles:
        profiles["default"] = list(StageName)
    return profiles


def load_cascade_config(root: Any = None) -> CascadeConfig:
    """
    Load all cascade configs from directory and compute version fingerprint.

    Args:
        root: Path to configs directory (default: the packaged configs/)

    Returns:
        CascadeConfig with loaded configs and version tracking

    Raises:
        FileNotFoundError: If required config files missing
        ValueError: If a profile names an unknown stage
    """
    root_path = Path(root) if root is not None else DEFAULT_CONFIG_ROOT

    config_files = {
        "stage_thresholds": root_path / "stage_thresholds.yml",
        "profiles": root_path / "cascade_profiles.yml",
        "safety_rules": root_path / "safety_rules.yml",
        "matching": root_path / "matching.yml",
    }

    data = {}
    for key, path in config_files.items():
        if path.exists():
            data[key] = load_config_file(path)
        elif key == "profiles":
            # Optional: falls back to the full default stage list
            data[key] = {}
        else:
            raise FileNotFoundError(f"Required config file not found: {path}")

    # Sort keys to ensure stability across reordered YAML
    blob = json.dumps(data, sort_keys=True).encode("utf-8")
    fingerprint = hashlib.sha256(blob).hexdigest()[:12]
    config_version = f"configs@{fingerprint}"

    return CascadeConfig(
        stage_thresholds=data["stage_thresholds"],
        profiles=_parse_profiles(data["profiles"]),
        safety_rules=data["safety_rules"],
        matching=data["matching"],
        config_version=config_version,
        config_fingerprint=fingerprint,
    )
