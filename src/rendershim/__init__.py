"""
rendershim - run HTML → PDF / image rendering binaries as bounded subprocesses.

Typical use::

    from rendershim import RenderService, get_settings

    service = RenderService.from_settings(get_settings())
    pdf = service.pdf(b"<h1>Hello</h1>", [("page-size", "A4")])
"""

__version__ = "0.1.0"

from rendershim.config import (
    DocumentType,
    RendererConfig,
    RenderersConfig,
    RenderShimSettings,
    config_from_mapping,
    default_config,
    get_settings,
    load_config,
    load_config_file,
)
from rendershim.errors import (
    BinaryNotFoundError,
    ConfigError,
    ErrorKind,
    NonZeroExitError,
    OutputExistsError,
    RenderError,
    RendererDisabledError,
    RenderIOError,
    RenderTimeoutError,
    UnknownDocumentTypeError,
)
from rendershim.resolver import ConfigResolver
from rendershim.service import BinaryStatus, RenderService
from rendershim.shim import Invocation, InvocationState, ProcessInvocationShim

__all__ = [
    "__version__",
    # Config
    "DocumentType",
    "RendererConfig",
    "RenderersConfig",
    "RenderShimSettings",
    "config_from_mapping",
    "default_config",
    "get_settings",
    "load_config",
    "load_config_file",
    # Errors
    "ErrorKind",
    "RenderError",
    "UnknownDocumentTypeError",
    "RendererDisabledError",
    "BinaryNotFoundError",
    "RenderTimeoutError",
    "NonZeroExitError",
    "RenderIOError",
    "OutputExistsError",
    "ConfigError",
    # Components
    "ConfigResolver",
    "ProcessInvocationShim",
    "Invocation",
    "InvocationState",
    "RenderService",
    "BinaryStatus",
]
