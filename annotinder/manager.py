"""Editing of the annotations of one unit.

:class:`AnnotationManager` is the only object that changes the span, field
and relation maps after a unit has been decoded. Every operation validates
its input before touching a map, so a rejected edit leaves the maps as they
were. Span edits rebuild the affected runs, which merges overlapping or
touching spans with the same code and splits spans when tokens in the
middle are removed.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .annotations import (
    AnnotationMaps,
    Coverage,
    build_span_annotations,
    encode_annotations,
    span_coverage,
)
from .config import ManagerConfig
from .shared.errors import AnnotationError, StaleUnitError
from .shared.models import (
    Annotation,
    AnnotationKey,
    RelationAnnotation,
    SpanAnnotation,
    SpanRef,
    Token,
)

LOGGER = logging.getLogger(__name__)

CodeHistory = Dict[str, List[str]]


class AnnotationManager:
    def __init__(
        self,
        tokens: Sequence[Token],
        maps: Optional[AnnotationMaps] = None,
        code_history: Optional[CodeHistory] = None,
        config: Optional[ManagerConfig] = None,
    ):
        self.tokens = tokens
        self.maps = maps or AnnotationMaps()
        self.code_history: CodeHistory = code_history if code_history is not None else {}
        self.config = config or ManagerConfig()
        self._stale = False

    @property
    def span_annotations(self):
        return self.maps.span_annotations

    @property
    def field_annotations(self):
        return self.maps.field_annotations

    @property
    def relation_annotations(self):
        return self.maps.relation_annotations

    @property
    def stale(self) -> bool:
        return self._stale

    def invalidate(self) -> None:
        """Mark the unit as replaced; later edits raise :class:`StaleUnitError`."""
        self._stale = True

    def _check_current(self) -> None:
        if self._stale:
            raise StaleUnitError("annotation manager belongs to a unit that is no longer loaded")

    def _check_range(self, start: int, end: Optional[int]) -> int:
        end = start if end is None else end
        if start > end:
            raise AnnotationError(f"invalid token range {start}-{end}")
        if start < 0 or end >= len(self.tokens):
            raise AnnotationError(f"token range {start}-{end} outside unit of {len(self.tokens)} tokens")
        if self.tokens[start].field != self.tokens[end].field:
            raise AnnotationError("a span annotation cannot cross fields")
        return end

    def _remember(self, variable: str, value: str) -> None:
        history = [value] + [v for v in self.code_history.get(variable, []) if v != value]
        self.code_history[variable] = history[: self.config.history_size]

    def spans_at(self, index: int) -> Dict[AnnotationKey, SpanAnnotation]:
        return dict(self.maps.span_annotations.get(index, {}))

    # ------------------------------ span edits ----------------------------- #

    def _apply_coverage(self, coverage: Coverage) -> None:
        rebuilt = build_span_annotations(coverage, self.tokens)
        self.maps.span_annotations.clear()
        self.maps.span_annotations.update(rebuilt)

    def _retarget_relations(self, moved: Optional[Dict[Tuple[AnnotationKey, int], AnnotationKey]] = None) -> None:
        """Point relation endpoints at the current runs, dropping dangling and duplicate relations.

        ``moved`` maps ``(old key, run start)`` of recoded spans to their new key.
        """
        spans = self.maps.span_annotations
        kept: List[RelationAnnotation] = []
        for relation in self.maps.relation_annotations:
            refs = []
            for ref in (relation.from_ref, relation.to_ref):
                key = (moved or {}).get((ref.key, ref.index), ref.key)
                detail = spans.get(ref.index, {}).get(key)
                refs.append(detail.to_ref() if detail else None)
            if refs[0] is None or refs[1] is None:
                LOGGER.info(
                    "relation_removed",
                    extra={"variable": relation.variable, "value": relation.value},
                )
                continue
            rebuilt = RelationAnnotation(relation.variable, relation.value, refs[0], refs[1])
            # merged spans can make two relations identical
            if any(rebuilt.same_as(existing) for existing in kept):
                continue
            kept.append(rebuilt)
        self.maps.relation_annotations[:] = kept

    def add_span_annotation(self, variable: str, value: str, start: int, end: Optional[int] = None) -> SpanAnnotation:
        """Code tokens ``start..end`` with ``value``, merging with touching spans of that code."""
        self._check_current()
        end = self._check_range(start, end)
        key = AnnotationKey(variable, str(value))
        coverage = span_coverage(self.maps.span_annotations)
        coverage.setdefault(key, set()).update(range(start, end + 1))
        self._apply_coverage(coverage)
        self._retarget_relations()
        self._remember(variable, key.value)
        return self.maps.span_annotations[start][key]

    def remove_span_annotation(
        self, variable: str, value: str, start: int, end: Optional[int] = None
    ) -> List[RelationAnnotation]:
        """Remove the code from tokens ``start..end``.

        With only ``start`` the whole span containing that token is removed.
        Relations attached to an affected span are removed and returned.
        """
        self._check_current()
        key = AnnotationKey(variable, str(value))
        if end is None:
            detail = self.maps.span_annotations.get(start, {}).get(key)
            if detail is None:
                raise AnnotationError(f"no annotation {key} at token {start}")
            start, end = detail.span
        end = self._check_range(start, end)

        affected = set(range(start, end + 1))
        removed = [
            relation
            for relation in self.maps.relation_annotations
            if any(ref.key == key and affected & self._ref_tokens(ref) for ref in (relation.from_ref, relation.to_ref))
        ]
        self.maps.relation_annotations[:] = [
            relation for relation in self.maps.relation_annotations if relation not in removed
        ]

        coverage = span_coverage(self.maps.span_annotations)
        remaining = coverage.get(key, set()) - affected
        if remaining:
            coverage[key] = remaining
        else:
            coverage.pop(key, None)
        self._apply_coverage(coverage)
        self._retarget_relations()
        return removed

    def _ref_tokens(self, ref: SpanRef) -> Set[int]:
        detail = self.maps.span_annotations.get(ref.index, {}).get(ref.key)
        if detail is None:
            return set()
        return set(range(detail.span[0], detail.span[1] + 1))

    def modify_span_annotation(self, variable: str, value: str, new_value: str, index: int) -> SpanAnnotation:
        """Change the code of the span at token ``index``; its relations follow it."""
        self._check_current()
        key = AnnotationKey(variable, str(value))
        new_key = AnnotationKey(variable, str(new_value))
        detail = self.maps.span_annotations.get(index, {}).get(key)
        if detail is None:
            raise AnnotationError(f"no annotation {key} at token {index}")
        first, last = detail.span

        coverage = span_coverage(self.maps.span_annotations)
        span_tokens = set(range(first, last + 1))
        coverage[key] = coverage[key] - span_tokens
        if not coverage[key]:
            del coverage[key]
        coverage.setdefault(new_key, set()).update(span_tokens)
        self._apply_coverage(coverage)
        self._retarget_relations(moved={(key, first): new_key})
        self._remember(variable, new_key.value)
        return self.maps.span_annotations[first][new_key]

    # ---------------------------- relation edits --------------------------- #

    def _endpoint(self, ref: SpanRef) -> SpanRef:
        if ref.index is None:
            raise AnnotationError("relation endpoints need a token index")
        detail = self.maps.span_annotations.get(ref.index, {}).get(ref.key)
        if detail is None:
            raise AnnotationError(f"no span annotation {ref.key} at token {ref.index}")
        return detail.to_ref()

    def add_relation(self, variable: str, value: str, from_ref: SpanRef, to_ref: SpanRef) -> RelationAnnotation:
        """Link two existing span annotations; adding an existing relation is a no-op."""
        self._check_current()
        relation = RelationAnnotation(variable, str(value), self._endpoint(from_ref), self._endpoint(to_ref))
        for existing in self.maps.relation_annotations:
            if existing.same_as(relation):
                return existing
        self.maps.relation_annotations.append(relation)
        self._remember(variable, relation.value)
        return relation

    def remove_relation(self, variable: str, value: str, from_ref: SpanRef, to_ref: SpanRef) -> bool:
        self._check_current()
        try:
            target = RelationAnnotation(variable, str(value), self._endpoint(from_ref), self._endpoint(to_ref))
        except AnnotationError:
            return False
        before = len(self.maps.relation_annotations)
        self.maps.relation_annotations[:] = [
            relation for relation in self.maps.relation_annotations if not relation.same_as(target)
        ]
        return len(self.maps.relation_annotations) < before

    # ----------------------------- field edits ----------------------------- #

    def set_field_annotation(self, variable: str, value: str, field: Optional[str] = None) -> None:
        self._check_current()
        self.maps.field_annotations.setdefault(field, {})[variable] = str(value)
        self._remember(variable, str(value))

    def clear_field_annotation(self, variable: str, field: Optional[str] = None) -> bool:
        self._check_current()
        values = self.maps.field_annotations.get(field)
        if not values or variable not in values:
            return False
        del values[variable]
        if not values:
            del self.maps.field_annotations[field]
        return True

    def export(self) -> List[Annotation]:
        """Encode the current maps into wire records."""
        self._check_current()
        return encode_annotations(self.maps, self.tokens)


__all__ = ["AnnotationManager", "CodeHistory"]
