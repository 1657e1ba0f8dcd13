"""Document-type → renderer configuration lookup."""

from __future__ import annotations

from rendershim.config.models import DocumentType, RendererConfig, RenderersConfig
from rendershim.errors import UnknownDocumentTypeError


class ConfigResolver:
    """Resolves a document-type key to its :class:`RendererConfig`.

    Matching is exact: only ``"pdf"``, ``"image"`` or the
    :class:`DocumentType` members themselves are accepted.
    """

    def __init__(self, config: RenderersConfig) -> None:
        self._config = config

    @property
    def config(self) -> RenderersConfig:
        return self._config

    def document_type(self, key: str | DocumentType) -> DocumentType:
        """Validate *key* and return the matching enum member."""
        if isinstance(key, DocumentType):
            return key
        if isinstance(key, str):
            for doc_type in DocumentType:
                if doc_type.value == key:
                    return doc_type
        raise UnknownDocumentTypeError(key)

    def resolve(self, key: str | DocumentType) -> RendererConfig:
        """Return the configuration for *key*.

        Raises:
            UnknownDocumentTypeError: *key* is not one of the two known types
        """
        return self._config.get(self.document_type(key))

    def document_types(self) -> list[DocumentType]:
        return list(DocumentType)
