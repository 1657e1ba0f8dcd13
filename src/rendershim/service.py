"""
Renderer facade — document type in, rendered bytes out.

``RenderService`` wires a :class:`ConfigResolver` to a
:class:`ProcessInvocationShim` so callers can say ``service.pdf(html)``
instead of resolving configuration themselves.

Examples:
    >>> service = RenderService.from_settings(get_settings())
    >>> pdf_bytes = service.pdf(b"<h1>Invoice</h1>", [("page-size", "A4")])
    >>> service.render_to_file("image", html, "out/preview.png", overwrite=True)

Tags:
    rendershim, facade, service

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rendershim.config.loader import load_config
from rendershim.config.models import DocumentType, OptionPair
from rendershim.config.settings import RenderShimSettings
from rendershim.errors import RenderError
from rendershim.logging import LogContext, get_logger
from rendershim.resolver import ConfigResolver
from rendershim.shim import ProcessInvocationShim, locate_binary

logger = get_logger(__name__)


@dataclass(frozen=True)
class BinaryStatus:
    """Availability of one document type's binary (no process spawned)."""

    document_type: DocumentType
    enabled: bool
    binary: str
    executable: str | None

    @property
    def available(self) -> bool:
        return self.executable is not None

    @property
    def healthy(self) -> bool:
        """Disabled types are healthy; enabled ones need a usable binary."""
        return not self.enabled or self.available

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_type": self.document_type.value,
            "enabled": self.enabled,
            "binary": self.binary,
            "executable": self.executable,
            "available": self.available,
        }


class RenderService:
    """Resolve a document type and hand it to the shim."""

    def __init__(self, resolver: ConfigResolver, shim: ProcessInvocationShim | None = None) -> None:
        self._resolver = resolver
        self._shim = shim or ProcessInvocationShim()

    @classmethod
    def from_settings(cls, settings: RenderShimSettings) -> RenderService:
        """Build resolver + shim from process settings."""
        config = load_config(settings)
        shim = ProcessInvocationShim(kill_timeout_seconds=settings.kill_timeout_seconds)
        logger.debug(
            "render_service_configured",
            config_file=str(settings.config_file) if settings.config_file else None,
            pdf_enabled=config.pdf.enabled,
            image_enabled=config.image.enabled,
        )
        return cls(ConfigResolver(config), shim)

    @property
    def resolver(self) -> ConfigResolver:
        return self._resolver

    @property
    def shim(self) -> ProcessInvocationShim:
        return self._shim

    # ── Rendering ────────────────────────────────────────────────

    def render(
        self,
        document_type: str | DocumentType,
        input: bytes,
        extra_options: Sequence[OptionPair] | Any = (),
    ) -> bytes:
        doc_type = self._resolver.document_type(document_type)
        config = self._resolver.resolve(doc_type)
        with LogContext(document_type=doc_type.value):
            try:
                return self._shim.render(config, input, extra_options)
            except RenderError as exc:
                self._annotate(exc, doc_type)
                raise

    def render_to_file(
        self,
        document_type: str | DocumentType,
        input: bytes,
        output_path: str | Path,
        extra_options: Sequence[OptionPair] | Any = (),
        *,
        overwrite: bool = False,
    ) -> Path:
        doc_type = self._resolver.document_type(document_type)
        config = self._resolver.resolve(doc_type)
        with LogContext(document_type=doc_type.value):
            try:
                return self._shim.render_to_file(
                    config, input, output_path, extra_options, overwrite=overwrite,
                )
            except RenderError as exc:
                self._annotate(exc, doc_type)
                raise

    async def render_async(
        self,
        document_type: str | DocumentType,
        input: bytes,
        extra_options: Sequence[OptionPair] | Any = (),
    ) -> bytes:
        doc_type = self._resolver.document_type(document_type)
        config = self._resolver.resolve(doc_type)
        async with LogContext(document_type=doc_type.value):
            try:
                return await self._shim.render_async(config, input, extra_options)
            except RenderError as exc:
                self._annotate(exc, doc_type)
                raise

    def pdf(self, input: bytes, extra_options: Sequence[OptionPair] | Any = ()) -> bytes:
        return self.render(DocumentType.PDF, input, extra_options)

    def image(self, input: bytes, extra_options: Sequence[OptionPair] | Any = ()) -> bytes:
        return self.render(DocumentType.IMAGE, input, extra_options)

    # ── Diagnostics ──────────────────────────────────────────────

    def check(self) -> dict[DocumentType, BinaryStatus]:
        """Report binary availability per document type."""
        statuses: dict[DocumentType, BinaryStatus] = {}
        for doc_type, config in self._resolver.config.items():
            statuses[doc_type] = BinaryStatus(
                document_type=doc_type,
                enabled=config.enabled,
                binary=config.binary,
                executable=locate_binary(config.binary),
            )
        return statuses

    @staticmethod
    def _annotate(exc: RenderError, doc_type: DocumentType) -> None:
        if getattr(exc, "document_type", "") is None:
            exc.document_type = doc_type.value
        exc.with_context(document_type=doc_type.value)
