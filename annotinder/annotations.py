"""Conversion between flat annotation records and token-indexed maps.

``decode_annotations`` places each wire record on the tokens it covers:

* span records go to the span map, ``{token index: {(variable, value): detail}}``
* records without a position go to the field map, ``{field: {variable: value}}``
* relation records go to the relation list, pointing at their endpoint spans

``encode_annotations`` is the inverse. Contiguous tokens of one field that
carry the same ``(variable, value)`` are emitted as a single record, so
encoding is idempotent however the span map was built up.

Records that cannot be placed on the current tokens are dropped, logged and
returned in :attr:`AnnotationMaps.unresolved`; they never stop decoding.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple, Union

import numpy as np

from .config import TokenizerConfig
from .shared.models import (
    Annotation,
    AnnotationKey,
    FieldAnnotations,
    RelationAnnotation,
    RelationAnnotations,
    SpanAnnotation,
    SpanAnnotations,
    SpanRef,
    Token,
)

LOGGER = logging.getLogger(__name__)

Coverage = Dict[AnnotationKey, Set[int]]
Bounds = Tuple[int, int]


@dataclass
class AnnotationMaps:
    span_annotations: SpanAnnotations = field(default_factory=dict)
    field_annotations: FieldAnnotations = field(default_factory=dict)
    relation_annotations: RelationAnnotations = field(default_factory=list)
    unresolved: List[Annotation] = field(default_factory=list)


class TokenIndex:
    """Sorted per-field offset arrays for resolving character positions."""

    def __init__(self, tokens: Sequence[Token]):
        self.tokens = tokens
        grouped: Dict[str, List[Token]] = {}
        for token in tokens:
            grouped.setdefault(token.field, []).append(token)
        self._fields = {
            name: (
                np.array([t.offset for t in group], dtype=np.int64),
                np.array([t.end for t in group], dtype=np.int64),
                np.array([t.index for t in group], dtype=np.int64),
            )
            for name, group in grouped.items()
        }

    def resolve(self, field_name: Optional[str], offset: int, length: Optional[int]) -> Optional[Bounds]:
        """Return the first and last token index covering ``[offset, offset + length)``.

        The first token is the one containing ``offset`` (or the next token
        when ``offset`` falls on whitespace), the last token is the last one
        starting before the end of the range.
        """
        arrays = self._fields.get(field_name) if field_name is not None else None
        if arrays is None:
            return None
        starts, ends, indices = arrays
        stop = offset + max(int(length or 0), 1)
        first = int(np.searchsorted(ends, offset, side="right"))
        last = int(np.searchsorted(starts, stop, side="left")) - 1
        if first >= len(starts) or last < first:
            return None
        return int(indices[first]), int(indices[last])

    def last_before(self, field_name: str, stop: int) -> Optional[int]:
        arrays = self._fields.get(field_name)
        if arrays is None:
            return None
        starts, _, indices = arrays
        last = int(np.searchsorted(starts, stop, side="left")) - 1
        if last < 0:
            return None
        return int(indices[last])


def covered_text(tokens: Sequence[Token], first: int, last: int) -> str:
    """Return ``pre + text + post`` of tokens ``first..last`` without the leading ``pre``."""
    parts = [tokens[first].text, tokens[first].post]
    for i in range(first + 1, last + 1):
        parts.extend((tokens[i].pre, tokens[i].text, tokens[i].post))
    return "".join(parts)


def span_detail(tokens: Sequence[Token], key: AnnotationKey, first: int, last: int) -> SpanAnnotation:
    start = tokens[first]
    return SpanAnnotation(
        variable=key.variable,
        value=key.value,
        field=start.field,
        offset=start.offset,
        length=tokens[last].end - start.offset,
        span=(first, last),
        text=covered_text(tokens, first, last),
    )


def span_coverage(span_annotations: SpanAnnotations) -> Coverage:
    coverage: Coverage = {}
    for index, annotations in span_annotations.items():
        for key in annotations:
            coverage.setdefault(key, set()).add(index)
    return coverage


def span_runs(coverage: Coverage, tokens: Sequence[Token]) -> Iterator[Tuple[AnnotationKey, int, int]]:
    """Yield ``(key, first, last)`` for every maximal run of covered tokens.

    Runs break on gaps and on field boundaries. Keys are visited in sorted
    order and runs in token order.
    """
    for key in sorted(coverage):
        indices = sorted(coverage[key])
        if not indices:
            continue
        first = prev = indices[0]
        for index in indices[1:]:
            if index != prev + 1 or tokens[index].field != tokens[prev].field:
                yield key, first, prev
                first = index
            prev = index
        yield key, first, prev


def build_span_annotations(coverage: Coverage, tokens: Sequence[Token]) -> SpanAnnotations:
    """Return a span map where every token of a run holds the run's detail."""
    built: SpanAnnotations = {}
    for key, first, last in span_runs(coverage, tokens):
        detail = span_detail(tokens, key, first, last)
        for index in range(first, last + 1):
            built.setdefault(index, {})[key] = detail
    return {
        index: {key: built[index][key] for key in sorted(built[index])}
        for index in sorted(built)
    }


def coalesce_span_annotations(span_annotations: SpanAnnotations, tokens: Sequence[Token]) -> SpanAnnotations:
    return build_span_annotations(span_coverage(span_annotations), tokens)


def _resolve_position(
    index_hint: Optional[int],
    field_name: Optional[str],
    offset: Optional[int],
    length: Optional[int],
    token_index: TokenIndex,
    default_field: str,
) -> Optional[Bounds]:
    tokens = token_index.tokens
    if index_hint is not None:
        if not 0 <= index_hint < len(tokens):
            return None
        token = tokens[index_hint]
        if not length:
            return index_hint, index_hint
        start = offset if offset is not None else token.offset
        last = token_index.last_before(token.field, start + length)
        return index_hint, max(index_hint, last if last is not None else index_hint)
    if offset is None:
        return None
    return token_index.resolve(field_name or default_field, offset, length)


def _log_unresolved(record: Annotation, reason: str) -> None:
    LOGGER.warning(
        "annotation_unresolved",
        extra={
            "reason": reason,
            "variable": record.variable,
            "value": record.value,
            "field": record.field,
            "offset": record.offset,
            "length": record.length,
        },
    )


def _endpoint(
    ref: SpanRef,
    span_annotations: SpanAnnotations,
    token_index: TokenIndex,
    default_field: str,
) -> Optional[SpanRef]:
    bounds = _resolve_position(ref.index, ref.field, ref.offset, ref.length, token_index, default_field)
    if bounds is None:
        return None
    detail = span_annotations.get(bounds[0], {}).get(ref.key)
    if detail is None:
        return None
    return detail.to_ref()


def decode_annotations(
    annotations: Optional[Sequence[Union[Annotation, Mapping[str, Any]]]],
    tokens: Sequence[Token],
    config: Optional[TokenizerConfig] = None,
) -> AnnotationMaps:
    """Split wire records into span, field and relation maps for ``tokens``."""
    config = config or TokenizerConfig()
    token_index = TokenIndex(tokens)
    maps = AnnotationMaps()
    coverage: Coverage = {}
    relations: List[Annotation] = []

    for raw in annotations or []:
        record = raw if isinstance(raw, Annotation) else Annotation.from_payload(raw)
        if record.is_relation:
            relations.append(record)
            continue
        if not record.is_positional:
            maps.field_annotations.setdefault(record.field, {})[record.variable] = record.value
            continue
        bounds = _resolve_position(
            record.index, record.field, record.offset, record.length, token_index, config.default_field
        )
        if bounds is None:
            _log_unresolved(record, "no_token_at_offset")
            maps.unresolved.append(record)
            continue
        coverage.setdefault(record.key, set()).update(range(bounds[0], bounds[1] + 1))

    maps.span_annotations = build_span_annotations(coverage, tokens)

    for record in relations:
        from_ref = _endpoint(record.from_ref, maps.span_annotations, token_index, config.default_field)
        to_ref = _endpoint(record.to_ref, maps.span_annotations, token_index, config.default_field)
        if from_ref is None or to_ref is None:
            _log_unresolved(record, "relation_endpoint_missing")
            maps.unresolved.append(record)
            continue
        relation = RelationAnnotation(record.variable, record.value, from_ref, to_ref)
        if any(relation.same_as(existing) for existing in maps.relation_annotations):
            continue
        maps.relation_annotations.append(relation)

    LOGGER.debug(
        "annotations_decoded",
        extra={
            "n_span_tokens": len(maps.span_annotations),
            "n_relations": len(maps.relation_annotations),
            "n_unresolved": len(maps.unresolved),
        },
    )
    return maps


# --------------------------------- encode ---------------------------------- #


def export_span_annotations(span_annotations: SpanAnnotations, tokens: Sequence[Token]) -> List[Annotation]:
    records = [
        span_detail(tokens, key, first, last).to_annotation()
        for key, first, last in span_runs(span_coverage(span_annotations), tokens)
    ]
    records.sort(key=lambda a: (a.index, a.variable, a.value))
    return records


def export_field_annotations(field_annotations: FieldAnnotations) -> List[Annotation]:
    records: List[Annotation] = []
    for field_name in sorted(field_annotations, key=lambda name: (name is not None, name or "")):
        values = field_annotations[field_name]
        for variable in sorted(values):
            records.append(Annotation(variable=variable, value=values[variable], field=field_name))
    return records


def export_relation_annotations(
    relation_annotations: RelationAnnotations,
    span_annotations: SpanAnnotations,
    tokens: Sequence[Token],
) -> List[Annotation]:
    """Emit one record per relation, with endpoints taken from the current spans."""
    runs: Dict[Tuple[AnnotationKey, int], SpanRef] = {}
    for key, first, last in span_runs(span_coverage(span_annotations), tokens):
        ref = span_detail(tokens, key, first, last).to_ref()
        for index in range(first, last + 1):
            runs[(key, index)] = ref

    records: List[Annotation] = []
    seen: Set[Tuple[Any, ...]] = set()
    for relation in relation_annotations:
        from_ref = runs.get((relation.from_ref.key, relation.from_ref.index))
        to_ref = runs.get((relation.to_ref.key, relation.to_ref.index))
        if from_ref is None or to_ref is None:
            LOGGER.warning(
                "relation_dangling",
                extra={"variable": relation.variable, "value": relation.value},
            )
            continue
        record = Annotation(
            variable=relation.variable,
            value=relation.value,
            from_ref=from_ref,
            to_ref=to_ref,
        )
        if record.identity() in seen:
            continue
        seen.add(record.identity())
        records.append(record)
    return records


def encode_annotations(maps: AnnotationMaps, tokens: Sequence[Token]) -> List[Annotation]:
    """Return span, field and relation records, in that order."""
    return [
        *export_span_annotations(maps.span_annotations, tokens),
        *export_field_annotations(maps.field_annotations),
        *export_relation_annotations(maps.relation_annotations, maps.span_annotations, tokens),
    ]


__all__ = [
    "AnnotationMaps",
    "TokenIndex",
    "build_span_annotations",
    "coalesce_span_annotations",
    "covered_text",
    "decode_annotations",
    "encode_annotations",
    "export_field_annotations",
    "export_relation_annotations",
    "export_span_annotations",
    "span_coverage",
    "span_detail",
    "span_runs",
]
