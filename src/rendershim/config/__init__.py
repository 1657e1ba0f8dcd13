"""
Renderer configuration: models, settings and loading.
"""

from .loader import (
    config_from_mapping,
    default_config,
    load_config,
    load_config_file,
    resolve_binary_path,
)
from .models import (
    DocumentType,
    OptionPair,
    RendererConfig,
    RenderersConfig,
    normalize_options,
)
from .settings import (
    RenderShimSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Models
    "DocumentType",
    "OptionPair",
    "RendererConfig",
    "RenderersConfig",
    "normalize_options",
    # Settings
    "RenderShimSettings",
    "get_settings",
    "clear_settings_cache",
    # Loader
    "config_from_mapping",
    "default_config",
    "load_config",
    "load_config_file",
    "resolve_binary_path",
]
