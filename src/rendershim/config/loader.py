"""
Load renderer configuration from TOML files, mappings and settings.

Load order (later wins)::

    shipped defaults  →  TOML file tables  →  RENDERSHIM_{TYPE}_* overrides

Example ``rendershim.toml``::

    [pdf]
    enabled = true
    binary = "vendor/bin/wkhtmltopdf-amd64"
    timeout = false
    options = [["page-size", "A4"], ["margin-top", "10mm"]]

    [pdf.env]
    LANG = "en_US.UTF-8"

    [image]
    enabled = false

Relative binaries containing a path separator are resolved against
``base_path``; bare names (``wkhtmltopdf``) are left for ``PATH`` lookup.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from rendershim.config.models import DocumentType, RendererConfig, RenderersConfig
from rendershim.config.settings import RenderShimSettings
from rendershim.errors import ConfigError

_DEFAULT_BINARIES: dict[DocumentType, str] = {
    DocumentType.PDF: "vendor/bin/wkhtmltopdf-amd64",
    DocumentType.IMAGE: "vendor/bin/wkhtmltoimage-amd64",
}

# wkhtmltopdf / wkhtmltoimage read "-" as stdin and write "-" to stdout
_DEFAULT_TRAILING_ARGS = ("-", "-")


def resolve_binary_path(binary: str, base_path: Path) -> str:
    """Anchor a relative path binary to *base_path*; leave bare names alone."""
    if not binary:
        return binary
    path = Path(binary).expanduser()
    if path.is_absolute():
        return str(path)
    if os.sep in binary or (os.altsep and os.altsep in binary):
        return str((base_path / path).resolve())
    return binary


def _defaults(document_type: DocumentType, base_path: Path) -> dict[str, Any]:
    return {
        "enabled": True,
        "binary": resolve_binary_path(_DEFAULT_BINARIES[document_type], base_path),
        "timeout": None,
        "options": (),
        "env": {},
        "input_mode": "stdin",
        "trailing_args": _DEFAULT_TRAILING_ARGS,
    }


def default_config(base_path: Path | None = None) -> RenderersConfig:
    """The shipped configuration: both types enabled, vendored binaries."""
    return config_from_mapping({}, base_path)


def config_from_mapping(
    data: Mapping[str, Any],
    base_path: Path | None = None,
    overrides: Mapping[str, Mapping[str, Any]] | None = None,
) -> RenderersConfig:
    """Build a frozen :class:`RenderersConfig` from an in-memory mapping.

    Each ``data[type]`` table is merged over the defaults, then
    ``overrides[type]`` over that.

    Raises:
        ConfigError: unknown top-level keys or a table failing validation
    """
    root = (base_path or Path.cwd()).resolve()
    known = {doc_type.value for doc_type in DocumentType}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(
            f"Unknown document type table(s) in configuration: {', '.join(sorted(unknown))}",
            context={"keys": sorted(unknown)},
        )

    renderers: dict[str, RendererConfig] = {}
    for doc_type in DocumentType:
        table = data.get(doc_type.value) or {}
        if not isinstance(table, Mapping):
            raise ConfigError(f"[{doc_type.value}] must be a table, got {type(table).__name__}")

        merged = _defaults(doc_type, root)
        merged.update(table)
        merged.update((overrides or {}).get(doc_type.value, {}))
        if isinstance(merged.get("binary"), str):
            merged["binary"] = resolve_binary_path(merged["binary"], root)

        try:
            renderers[doc_type.value] = RendererConfig(**merged)
        except ValidationError as exc:
            raise ConfigError(
                f"Invalid [{doc_type.value}] configuration: {exc}",
                context={"document_type": doc_type.value},
                cause=exc,
            ) from exc

    return RenderersConfig(**renderers)


def load_config_file(
    path: Path,
    base_path: Path | None = None,
    overrides: Mapping[str, Mapping[str, Any]] | None = None,
) -> RenderersConfig:
    """Parse a TOML file and build the configuration from it."""
    try:
        data = tomllib.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}", context={"path": str(path)}, cause=exc) from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}", context={"path": str(path)}, cause=exc) from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}", context={"path": str(path)}, cause=exc) from exc

    return config_from_mapping(data, base_path, overrides)


def load_config(settings: RenderShimSettings) -> RenderersConfig:
    """Resolve the effective configuration for *settings*."""
    overrides = {doc_type.value: settings.overrides_for(doc_type.value) for doc_type in DocumentType}
    if settings.config_file is not None:
        return load_config_file(settings.config_file, settings.base_path, overrides)
    return config_from_mapping({}, settings.base_path, overrides)
