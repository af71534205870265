from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, get_args

from omegaconf import DictConfig, OmegaConf
from omegaconf.errors import OmegaConfBaseException

from .errors import ConfigOptionError
from .models import (
    ConfigMetadata,
    DisplayConfig,
    FlipAnimation,
    NavigationStyle,
    PageImageOptions,
    PageLayout,
)

DEFAULTS_PATH = Path(__file__).resolve().parent / "defaults.yaml"

DISPLAY_OPTIONS: Dict[str, List[str]] = {
    "flipAnimation": list(get_args(FlipAnimation)),
    "pageLayout": list(get_args(PageLayout)),
    "navigationStyle": list(get_args(NavigationStyle)),
}

# Accept both the JSON (camelCase) and the Python (snake_case) spelling.
_FIELD_NAMES: Dict[str, str] = {}
for _name, _field in DisplayConfig.model_fields.items():
    _FIELD_NAMES[_name] = _name
    if _field.alias:
        _FIELD_NAMES[_field.alias] = _name


@lru_cache(maxsize=1)
def _load_defaults() -> DictConfig:
    if not DEFAULTS_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {DEFAULTS_PATH}")
    return OmegaConf.load(DEFAULTS_PATH)


def default_display_config() -> DisplayConfig:
    container = OmegaConf.to_container(_load_defaults().display, resolve=True)
    return DisplayConfig.model_validate(container)


def default_page_image_options() -> PageImageOptions:
    container = OmegaConf.to_container(_load_defaults().page_image, resolve=True)
    return PageImageOptions.model_validate(container)


def build_config_metadata() -> ConfigMetadata:
    return ConfigMetadata(defaults=default_display_config(), options=DISPLAY_OPTIONS)


def merge_display_config(current: DisplayConfig, patch: Mapping[str, Any]) -> DisplayConfig:
    """
    Merge a partial display config into ``current`` and return a new config.

    Keys may use either spelling; ``None`` values are ignored. Unknown keys raise
    ConfigOptionError and invalid values raise pydantic.ValidationError. The
    inputs are never mutated.
    """
    normalized: Dict[str, Any] = {}
    for key, value in patch.items():
        if value is None:
            continue
        if key not in _FIELD_NAMES:
            raise ConfigOptionError(f"Unknown config option: {key}")
        normalized[_FIELD_NAMES[key]] = value

    base = OmegaConf.create(current.model_dump())
    OmegaConf.set_struct(base, True)
    try:
        merged = OmegaConf.merge(base, OmegaConf.create(normalized))
    except OmegaConfBaseException as exc:
        raise ConfigOptionError(str(exc)) from exc

    return DisplayConfig.model_validate(OmegaConf.to_container(merged, resolve=False))
