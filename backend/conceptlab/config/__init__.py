"""Configuration package."""

from conceptlab.config.extraction import (
    ExtractionSettings,
    extraction_settings,
    get_extraction_settings,
)
from conceptlab.config.settings import (
    Settings,
    get_settings,
    load_yaml_config,
    settings,
    yaml_config,
)

__all__ = [
    # Extraction settings
    "extraction_settings",
    "ExtractionSettings",
    "get_extraction_settings",
    # Application settings
    "Settings",
    "get_settings",
    "load_yaml_config",
    "settings",
    "yaml_config",
]
