"""
Renderer configuration models.

One :class:`RendererConfig` per :class:`DocumentType`, grouped in a frozen
:class:`RenderersConfig`. Models are validated once at startup and never
mutated afterwards.

Options may be written as ordered pairs or as a mapping. A mapping is
flattened in insertion order::

    {"page-size": "A4", "grayscale": True, "quiet": False,
     "custom-header": ["A: 1", "B: 2"]}

    → (("page-size", "A4"), ("grayscale", None),
       ("custom-header", "A: 1"), ("custom-header", "B: 2"))

Tags:
    rendershim, configuration, pydantic, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

OptionPair = tuple[str, str | None]


class DocumentType(str, Enum):
    """The two supported rendering targets."""

    PDF = "pdf"
    IMAGE = "image"


def normalize_options(value: Any) -> tuple[OptionPair, ...]:
    """Turn a mapping or a sequence of pairs into ordered ``(flag, value)`` pairs.

    Mapping values: ``True`` → bare flag, ``False``/``None`` → omitted,
    list/tuple → the flag repeated once per item, anything else → ``str()``.
    Pair values of ``None`` mean a bare switch.
    """
    if value is None:
        return ()

    pairs: list[OptionPair] = []
    if isinstance(value, Mapping):
        for flag, item in value.items():
            if item is True:
                pairs.append((str(flag), None))
            elif item is False or item is None:
                continue
            elif isinstance(item, (list, tuple)):
                pairs.extend((str(flag), _option_value(v)) for v in item)
            else:
                pairs.append((str(flag), _option_value(item)))
        return tuple(pairs)

    if isinstance(value, (str, bytes)):
        raise ValueError("options must be a mapping or a sequence of (flag, value) pairs")

    for entry in value:
        if isinstance(entry, str):
            pairs.append((entry, None))
            continue
        entry = tuple(entry)
        if len(entry) == 1:
            pairs.append((str(entry[0]), None))
        elif len(entry) == 2:
            pairs.append((str(entry[0]), _option_value(entry[1])))
        else:
            raise ValueError(f"option entries must be (flag, value) pairs, got {entry!r}")
    return tuple(pairs)


def _option_value(value: Any) -> str | None:
    if value is None or value is True:
        return None
    return str(value)


class RendererConfig(BaseModel):
    """Configuration for one external rendering binary.

    Fields
    ──────
    enabled        : Reject invocations before any process work when False
    binary         : Absolute or resolvable path of the executable
    timeout        : Seconds before the child is terminated; None = no limit
    options        : Ordered (flag, value) pairs; flags may repeat
    env            : Read-only overlay onto the host environment for the child
    input_mode     : "stdin" pipes the input, "file" passes a temp file path
    input_suffix   : Extension of the temp input file in "file" mode
    trailing_args  : Positional args appended after options / input path
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    binary: str = ""
    timeout: Annotated[float, Field(ge=0)] | None = None
    options: tuple[OptionPair, ...] = ()
    env: Mapping[str, str] = Field(default_factory=dict, validate_default=True)
    input_mode: Literal["stdin", "file"] = "stdin"
    input_suffix: str = ".html"
    trailing_args: tuple[str, ...] = ()

    @field_validator("timeout", mode="before")
    @classmethod
    def _coerce_timeout(cls, value: Any) -> Any:
        # `false` is the legacy spelling of "no timeout"
        if value is False or value is None or value == "":
            return None
        if value is True:
            raise ValueError("timeout must be a number of seconds, false or null")
        return value

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, value: Any) -> tuple[OptionPair, ...]:
        return normalize_options(value)

    @field_validator("options")
    @classmethod
    def _check_flags(cls, value: tuple[OptionPair, ...]) -> tuple[OptionPair, ...]:
        for flag, _ in value:
            if not flag.strip():
                raise ValueError("option flags must be non-empty")
        return value

    @field_validator("env", mode="before")
    @classmethod
    def _coerce_env(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, Mapping):
            return {str(k): str(v) for k, v in value.items()}
        return value

    @field_validator("env")
    @classmethod
    def _freeze_env(cls, value: Mapping[str, str]) -> Mapping[str, str]:
        return MappingProxyType(dict(value))

    @field_serializer("env")
    def _dump_env(self, value: Mapping[str, str]) -> dict[str, str]:
        return dict(value)

    @model_validator(mode="after")
    def _require_binary_when_enabled(self) -> RendererConfig:
        if self.enabled and not self.binary.strip():
            raise ValueError("binary must be set when the renderer is enabled")
        return self

    @property
    def has_timeout(self) -> bool:
        return self.timeout is not None


class RenderersConfig(BaseModel):
    """The two-level ``{pdf: ..., image: ...}`` mapping."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    pdf: RendererConfig
    image: RendererConfig

    def get(self, document_type: DocumentType) -> RendererConfig:
        return getattr(self, document_type.value)

    def items(self) -> list[tuple[DocumentType, RendererConfig]]:
        return [(doc_type, self.get(doc_type)) for doc_type in DocumentType]


__all__ = [
    "DocumentType",
    "OptionPair",
    "RendererConfig",
    "RenderersConfig",
    "normalize_options",
]
