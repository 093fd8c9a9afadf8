"""
YAML settings loading for the bot tunables.

A settings file may start with `extends: <parent>` where the parent is
'default', a profile name from SETTINGS_PROFILES, or a sibling YAML file.
Dot-notation overrides (e.g. from tests or the environment) are applied
last, then the result is validated into BotSettings.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Set
from copy import deepcopy

from src.settings.schema import BotSettings
from src.settings.defaults import DEFAULT_CONFIG, SETTINGS_PROFILES


def load_yaml(file_path: Path) -> Dict[str, Any]:
    """
    Read one YAML settings file.

    An empty file reads as {}. A file whose top level is not a mapping is
    rejected.

    Raises:
        FileNotFoundError: If the file is missing
        ValueError: If the top level is not a mapping
    """
    file_path = Path(file_path)
    if not file_path.is_file():
        raise FileNotFoundError(f"Settings file not found: {file_path}")

    with open(file_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{file_path} must contain a mapping, got {type(data).__name__}")
    return data


def merge_dicts(base: Dict, override: Dict) -> Dict:
    """Deep-merge override into a copy of base. Sections merge, leaves replace."""
    merged = deepcopy(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_dicts(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


def apply_overrides(config: Dict, overrides: Dict[str, Any]) -> Dict:
    """
    Set values addressed by dotted keys.

    Example:
        >>> apply_overrides({"quota": {"daily_allotment": 15}}, {"quota.daily_allotment": 5})
        {'quota': {'daily_allotment': 5}}
    """
    result = deepcopy(config)
    for dotted, value in overrides.items():
        *sections, leaf = dotted.split('.')
        node = result
        for section in sections:
            node = node.setdefault(section, {})
        node[leaf] = value
    return result


def _parent_settings(parent_ref: str, config_dir: Path, seen: Set[Path]) -> Dict:
    if parent_ref == 'default':
        return deepcopy(DEFAULT_CONFIG)
    if parent_ref in SETTINGS_PROFILES:
        return merge_dicts(DEFAULT_CONFIG, SETTINGS_PROFILES[parent_ref])

    parent_file = (config_dir / parent_ref)
    if not parent_file.suffix:
        parent_file = parent_file.with_suffix('.yaml')
    parent_file = parent_file.resolve()
    if parent_file in seen:
        raise ValueError(f"Circular 'extends' chain through {parent_file}")
    seen.add(parent_file)
    return resolve_extends(load_yaml(parent_file), config_dir, seen)


def resolve_extends(config: Dict, config_dir: Path, seen: Optional[Set[Path]] = None) -> Dict:
    """Merge a settings dict onto whatever its 'extends' key names."""
    if 'extends' not in config:
        return config

    own = {key: value for key, value in config.items() if key != 'extends'}
    parent = _parent_settings(str(config['extends']), config_dir, seen if seen is not None else set())
    return merge_dicts(parent, own)


def get_nested(config: Dict, key: str, default: Any = None) -> Any:
    """Read a dotted key such as "moderation.flag_threshold"; default if absent."""
    node: Any = config
    for part in key.split('.'):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def load_settings_dict(
    settings_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    config_dir: Optional[Path] = None
) -> Dict[str, Any]:
    """
    Build the raw settings mapping.

    DEFAULT_CONFIG, then the YAML file (with its 'extends' chain resolved
    relative to config_dir or the file's own directory), then overrides.
    """
    settings = deepcopy(DEFAULT_CONFIG)

    if settings_path:
        settings_file = Path(settings_path).resolve()
        from_file = resolve_extends(load_yaml(settings_file), config_dir or settings_file.parent)
        settings = merge_dicts(settings, from_file)

    if overrides:
        settings = apply_overrides(settings, overrides)

    return settings


def load_settings(
    settings_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    config_dir: Optional[Path] = None
) -> BotSettings:
    """
    Load and validate bot settings.

    Raises:
        pydantic.ValidationError: If a value is out of range
        FileNotFoundError: If settings_path does not exist
    """
    return BotSettings.model_validate(load_settings_dict(settings_path, overrides, config_dir))
