"""Preparation of a unit for annotation.

:func:`get_doc` turns the ``unit`` payload of a coding job into a
:class:`Doc` (tokens plus the non-text fields and grid layout) and
:class:`UnitSession` keeps the annotation state of the unit that is
currently open. Loading another unit replaces that state wholesale; the
manager and token sequence of the previous unit are refused afterwards so
that annotations never leak from one unit into the next.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from .annotations import AnnotationMaps, decode_annotations, encode_annotations
from .config import AnnotinderConfig
from .manager import AnnotationManager, CodeHistory
from .shared.errors import StaleUnitError
from .shared.models import Annotation, Token
from .tokens import import_token_annotations, import_tokens, parse_tokens

LOGGER = logging.getLogger(__name__)

FIELD_LISTS = ("textFields", "imageFields", "markdownFields")


@dataclass
class GridLayout:
    areas: str
    rows: Optional[str] = None
    columns: Optional[str] = None
    area_names: Dict[str, str] = field(default_factory=dict)


@dataclass
class Doc:
    tokens: List[Token]
    text_fields: List[Dict[str, Any]] = field(default_factory=list)
    meta_fields: List[Dict[str, Any]] = field(default_factory=list)
    image_fields: List[Dict[str, Any]] = field(default_factory=list)
    markdown_fields: List[Dict[str, Any]] = field(default_factory=list)
    grid: Optional[GridLayout] = None


def _fractions(values: Sequence[Any], n: int) -> str:
    return " ".join(f"{values[i] if i < len(values) else values[-1]}fr" for i in range(n))


def prepare_grid(
    grid: Mapping[str, Any], fields: Mapping[str, Sequence[Mapping[str, Any]]]
) -> tuple[GridLayout, Dict[str, List[Dict[str, Any]]]]:
    """Return the grid layout and the fields placed on it.

    ``grid["areas"]`` is a list of rows, each a list of field names (or a
    single name). Empty rows are skipped and rows shorter than the widest
    row repeat their last cell.
    Field names are replaced by generated area names (``f0``, ``f1``, ...)
    and fields that do not appear in the grid are dropped.
    """
    rows = [row if isinstance(row, (list, tuple)) else [row] for row in grid.get("areas") or []]
    rows = [row for row in rows if row]
    ncolumns = max([1, *(len(row) for row in rows)])

    area_names: Dict[str, str] = {}
    used = set()
    template = []
    for row in rows:
        cells = []
        for i in range(ncolumns):
            column = str(row[i] if i < len(row) else row[-1])
            used.add(column)
            if column == ".":
                cells.append(column)
                continue
            if column not in area_names:
                area_names[column] = f"f{len(area_names)}"
            cells.append(area_names[column])
        template.append('"' + " ".join(cells) + '"')

    placed: Dict[str, List[Dict[str, Any]]] = {}
    for kind, entries in fields.items():
        placed[kind] = [
            {**entry, "grid_area": area_names[entry.get("name")]}
            for entry in entries
            if entry.get("name") in used and entry.get("name") in area_names
        ]

    layout = GridLayout(
        areas=" ".join(template),
        rows=_fractions(grid["rows"], len(template)) if grid.get("rows") else None,
        columns=_fractions(grid["columns"], ncolumns) if grid.get("columns") else None,
        area_names=area_names,
    )
    return layout, placed


def _unit_content(unit: Mapping[str, Any]) -> Mapping[str, Any]:
    content = unit.get("unit")
    return content if isinstance(content, Mapping) else unit


def get_doc(unit: Mapping[str, Any], config: Optional[AnnotinderConfig] = None) -> Doc:
    """Build the document of a unit, tokenizing text fields when no tokens are given.

    :class:`~annotinder.shared.errors.ValidationError` from the token
    importer propagates to the caller.
    """
    config = config or AnnotinderConfig()
    content = _unit_content(unit)
    fields = {kind: [dict(entry) for entry in content.get(kind) or []] for kind in FIELD_LISTS}

    grid = None
    raw_grid = content.get("grid")
    if isinstance(raw_grid, Mapping) and raw_grid.get("areas"):
        grid, fields = prepare_grid(raw_grid, fields)

    raw_tokens = content.get("tokens")
    if raw_tokens is not None and len(raw_tokens) > 0:
        tokens = import_tokens(raw_tokens, config.tokenizer)
    else:
        tokens = parse_tokens(fields["textFields"], config.tokenizer)

    return Doc(
        tokens=tokens,
        text_fields=fields["textFields"],
        meta_fields=[dict(entry) for entry in content.get("metaFields") or []],
        image_fields=fields["imageFields"],
        markdown_fields=fields["markdownFields"],
        grid=grid,
    )


def initialize_code_history(
    annotations: Sequence[Union[Annotation, Mapping[str, Any]]], history_size: Optional[int] = None
) -> CodeHistory:
    """Seed the code history with the values already used in a unit, first seen first."""
    history: CodeHistory = {}
    for raw in annotations:
        record = raw if isinstance(raw, Annotation) else Annotation.from_payload(raw)
        values = history.setdefault(record.variable, [])
        if record.value not in values:
            values.append(record.value)
    if history_size is not None:
        history = {variable: values[:history_size] for variable, values in history.items()}
    return history


class UnitSession:
    """Annotation state of the unit that is currently open."""

    def __init__(self, config: Optional[AnnotinderConfig] = None):
        self.config = config or AnnotinderConfig()
        self.doc: Optional[Doc] = None
        self.manager: Optional[AnnotationManager] = None

    @property
    def tokens(self) -> List[Token]:
        if self.doc is None:
            raise StaleUnitError("no unit loaded")
        return self.doc.tokens

    @property
    def maps(self) -> AnnotationMaps:
        if self.manager is None:
            raise StaleUnitError("no unit loaded")
        return self.manager.maps

    @property
    def code_history(self) -> CodeHistory:
        if self.manager is None:
            raise StaleUnitError("no unit loaded")
        return self.manager.code_history

    def load(
        self,
        unit: Mapping[str, Any],
        annotations: Optional[Sequence[Union[Annotation, Mapping[str, Any]]]] = None,
    ) -> AnnotationManager:
        """Open ``unit``; ``annotations`` override the ones stored on the unit.

        Tokens that carry their own annotations are used when neither source
        provides any. Nothing is replaced when the unit fails to tokenize.
        """
        doc = get_doc(unit, self.config)
        records: Sequence[Union[Annotation, Mapping[str, Any]]]
        if annotations is not None:
            records = list(annotations)
        else:
            records = list(_unit_content(unit).get("annotations") or [])
        if not records:
            records = import_token_annotations(doc.tokens)

        maps = decode_annotations(records, doc.tokens, self.config.tokenizer)
        history = initialize_code_history(records, self.config.manager.history_size)

        if self.manager is not None:
            self.manager.invalidate()
        self.doc = doc
        self.manager = AnnotationManager(doc.tokens, maps, history, self.config.manager)
        LOGGER.debug(
            "unit_loaded",
            extra={"n_tokens": len(doc.tokens), "n_annotations": len(records)},
        )
        return self.manager

    def export(self, tokens: Optional[Sequence[Token]] = None) -> List[Annotation]:
        """Return the current annotations as wire records.

        When ``tokens`` is given it must be the token sequence of the loaded
        unit; a sequence from an earlier unit raises :class:`StaleUnitError`.
        """
        if self.doc is None or self.manager is None:
            raise StaleUnitError("no unit loaded")
        if tokens is not None and tokens is not self.doc.tokens:
            raise StaleUnitError("annotations were requested for a unit that is no longer loaded")
        return encode_annotations(self.manager.maps, self.doc.tokens)


__all__ = [
    "Doc",
    "GridLayout",
    "UnitSession",
    "get_doc",
    "initialize_code_history",
    "prepare_grid",
]
