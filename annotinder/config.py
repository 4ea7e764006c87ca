"""Configuration dataclasses for tokenization, codebooks and editing."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Optional, Tuple

LOGGER = logging.getLogger(__name__)


@dataclass
class TokenizerConfig:
    default_field: str = "text"
    # used for imported tokens whose trailing whitespace cannot be derived
    default_post: str = " "


@dataclass
class CodebookConfig:
    edit_all: str = "EDIT ALL"
    # restricted-code value that stands for "no code" and is never synthesized
    empty_value: str = "EMPTY"
    option_alpha: str = "88"
    tree_separator: str = " - "
    no_color_types: Tuple[str, ...] = ("scale",)


@dataclass
class ManagerConfig:
    history_size: int = 10


@dataclass
class AnnotinderConfig:
    tokenizer: TokenizerConfig = field(default_factory=TokenizerConfig)
    codebook: CodebookConfig = field(default_factory=CodebookConfig)
    manager: ManagerConfig = field(default_factory=ManagerConfig)

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Any]] = None) -> "AnnotinderConfig":
        """Return a config with ``{"section": {"key": value}}`` overrides applied."""
        cfg = cls()
        _apply_overrides(cfg, dict(overrides or {}))
        return cfg


def _apply_overrides(target: object, overrides: Mapping[str, Any]) -> None:
    known = {f.name for f in fields(target)} if is_dataclass(target) else set()
    for key, value in overrides.items():
        if key not in known:
            LOGGER.warning(
                "config_unknown_key",
                extra={"key": key, "section": type(target).__name__},
            )
            continue
        current = getattr(target, key)
        if isinstance(value, Mapping) and is_dataclass(current):
            _apply_overrides(current, value)
        elif isinstance(current, tuple) and isinstance(value, (list, tuple)):
            setattr(target, key, tuple(value))
        else:
            setattr(target, key, value)


__all__ = [
    "AnnotinderConfig",
    "CodebookConfig",
    "ManagerConfig",
    "TokenizerConfig",
]
