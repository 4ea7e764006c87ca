"""Dataclass records for tokens, annotations and codebook entries.

The records mirror the JSON payloads exchanged with the annotation backend.
Each wire-level record offers ``to_payload``/``from_payload`` helpers; keys
that are camelCase on the wire (``codingUnit``, ``activeParent``,
``editMode``) are snake_case attributes here.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Tuple


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)


def _string_list(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(item) for item in value]
    return [str(value)]


class AnnotationKey(NamedTuple):
    """Composite ``(variable, value)`` key of a span annotation."""

    variable: str
    value: str

    def __str__(self) -> str:
        return f"{self.variable}|{self.value}"


# --------------------------------- tokens ---------------------------------- #


@dataclass(frozen=True)
class Token:
    field: str
    offset: int
    length: int
    paragraph: int
    index: int
    text: str
    pre: str = ""
    post: str = ""
    coding_unit: bool = True
    annotations: Tuple[Dict[str, Any], ...] = ()

    @property
    def end(self) -> int:
        return self.offset + self.length

    def to_payload(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "offset": self.offset,
            "length": self.length,
            "paragraph": self.paragraph,
            "index": self.index,
            "text": self.text,
            "pre": self.pre,
            "post": self.post,
            "codingUnit": self.coding_unit,
            "annotations": [dict(annotation) for annotation in self.annotations],
        }


# ------------------------------- annotations ------------------------------- #


@dataclass(frozen=True)
class SpanRef:
    """Reference from a relation record to one of its endpoint spans."""

    variable: str
    value: str
    field: Optional[str] = None
    offset: Optional[int] = None
    length: Optional[int] = None
    index: Optional[int] = None

    @property
    def key(self) -> AnnotationKey:
        return AnnotationKey(self.variable, self.value)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"variable": self.variable, "value": self.value}
        if self.field is not None:
            payload["field"] = self.field
        if self.offset is not None:
            payload["offset"] = self.offset
        if self.length is not None:
            payload["length"] = self.length
        return payload

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "SpanRef":
        return cls(
            variable=str(data.get("variable") or ""),
            value=str(data.get("value") if data.get("value") is not None else ""),
            field=str(data["field"]) if data.get("field") is not None else None,
            offset=_optional_int(data.get("offset")),
            length=_optional_int(data.get("length")),
            index=_optional_int(data.get("index")),
        )


@dataclass
class Annotation:
    """A single annotation record in the flat wire format.

    Span annotations carry ``field``/``offset``/``length``, field annotations
    only carry ``field`` and relation annotations carry ``from_ref`` and
    ``to_ref`` pointing at their endpoint spans. ``index`` is an optional
    token index hint and is never written back to the wire.
    """

    variable: str
    value: str
    field: Optional[str] = None
    offset: Optional[int] = None
    length: Optional[int] = None
    index: Optional[int] = None
    text: Optional[str] = None
    from_ref: Optional[SpanRef] = None
    to_ref: Optional[SpanRef] = None

    @property
    def key(self) -> AnnotationKey:
        return AnnotationKey(self.variable, self.value)

    @property
    def is_relation(self) -> bool:
        return self.from_ref is not None and self.to_ref is not None

    @property
    def is_positional(self) -> bool:
        return self.offset is not None or self.index is not None

    def identity(self) -> Tuple[Any, ...]:
        """Return the fields that identify the record, ignoring ``text``."""
        from_id = tuple(self.from_ref.to_payload().items()) if self.from_ref else None
        to_id = tuple(self.to_ref.to_payload().items()) if self.to_ref else None
        return (self.variable, self.value, self.field, self.offset, self.length, from_id, to_id)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"variable": self.variable, "value": self.value}
        if self.field is not None:
            payload["field"] = self.field
        if self.offset is not None:
            payload["offset"] = self.offset
        if self.length is not None:
            payload["length"] = self.length
        if self.text is not None:
            payload["text"] = self.text
        if self.from_ref is not None:
            payload["from"] = self.from_ref.to_payload()
        if self.to_ref is not None:
            payload["to"] = self.to_ref.to_payload()
        return payload

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "Annotation":
        raw_from = data.get("from")
        raw_to = data.get("to")
        value = data.get("value")
        return cls(
            variable=str(data.get("variable") or ""),
            value=str(value) if value is not None else "",
            field=str(data["field"]) if data.get("field") is not None else None,
            offset=_optional_int(data.get("offset")),
            length=_optional_int(data.get("length")),
            index=_optional_int(data.get("index")),
            text=data.get("text"),
            from_ref=SpanRef.from_payload(raw_from) if isinstance(raw_from, Mapping) else None,
            to_ref=SpanRef.from_payload(raw_to) if isinstance(raw_to, Mapping) else None,
        )


@dataclass(frozen=True)
class SpanAnnotation:
    """Detail stored on every token covered by a span annotation."""

    variable: str
    value: str
    field: str
    offset: int
    length: int
    span: Tuple[int, int]
    text: str

    @property
    def key(self) -> AnnotationKey:
        return AnnotationKey(self.variable, self.value)

    @property
    def index(self) -> int:
        return self.span[0]

    def to_ref(self) -> SpanRef:
        return SpanRef(
            variable=self.variable,
            value=self.value,
            field=self.field,
            offset=self.offset,
            length=self.length,
            index=self.span[0],
        )

    def to_annotation(self) -> Annotation:
        return Annotation(
            variable=self.variable,
            value=self.value,
            field=self.field,
            offset=self.offset,
            length=self.length,
            index=self.span[0],
            text=self.text,
        )


@dataclass(frozen=True)
class RelationAnnotation:
    variable: str
    value: str
    from_ref: SpanRef
    to_ref: SpanRef

    def same_as(self, other: "RelationAnnotation") -> bool:
        return (
            self.variable == other.variable
            and self.value == other.value
            and (self.from_ref.key, self.from_ref.index) == (other.from_ref.key, other.from_ref.index)
            and (self.to_ref.key, self.to_ref.index) == (other.to_ref.key, other.to_ref.index)
        )


SpanAnnotations = Dict[int, Dict[AnnotationKey, SpanAnnotation]]
FieldAnnotations = Dict[Optional[str], Dict[str, str]]
RelationAnnotations = List[RelationAnnotation]


# -------------------------------- codebook --------------------------------- #


@dataclass
class Code:
    code: str
    color: Optional[str] = None
    parent: Optional[str] = None
    active: bool = True
    active_parent: bool = True
    tree: List[str] = field(default_factory=list)
    children: List[str] = field(default_factory=list)
    makes_irrelevant: List[str] = field(default_factory=list)
    required_for: List[str] = field(default_factory=list)
    swipe: Optional[str] = None
    depth: int = 0

    def copy(self) -> "Code":
        return replace(
            self,
            tree=list(self.tree),
            children=list(self.children),
            makes_irrelevant=list(self.makes_irrelevant),
            required_for=list(self.required_for),
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": self.code,
            "color": self.color,
            "parent": self.parent,
            "active": self.active,
            "activeParent": self.active_parent,
            "tree": list(self.tree),
            "makes_irrelevant": list(self.makes_irrelevant),
        }
        if self.required_for:
            payload["required_for"] = list(self.required_for)
        if self.swipe:
            payload["swipe"] = self.swipe
        return payload


@dataclass
class CodeRelation:
    """One side (``from`` or ``to``) of a relation rule."""

    variable: Optional[str] = None
    values: Optional[List[str]] = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any] | None) -> Optional["CodeRelation"]:
        if not isinstance(data, Mapping):
            return None
        variable = data.get("variable")
        values = data.get("values")
        return cls(
            variable=str(variable) if variable else None,
            values=_string_list(values) if values is not None else None,
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.variable is not None:
            payload["variable"] = self.variable
        if self.values is not None:
            payload["values"] = list(self.values)
        return payload


@dataclass
class RelationRule:
    """Constraint on which span codes a relation code may connect."""

    codes: Optional[List[str]] = None
    from_: Optional[CodeRelation] = None
    to: Optional[CodeRelation] = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "RelationRule":
        codes = data.get("codes")
        return cls(
            codes=_string_list(codes) if codes is not None else None,
            from_=CodeRelation.from_payload(data.get("from")),
            to=CodeRelation.from_payload(data.get("to")),
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.codes is not None:
            payload["codes"] = list(self.codes)
        if self.from_ is not None:
            payload["from"] = self.from_.to_payload()
        if self.to is not None:
            payload["to"] = self.to.to_payload()
        return payload


ValidRelation = Dict[str, Dict[str, Dict[int, List[Code]]]]


@dataclass
class Variable:
    name: str
    type: str = "span"
    code_map: Dict[str, Code] = field(default_factory=dict)
    relations: Optional[List[RelationRule]] = None
    edit_mode: bool = False
    instruction: Optional[str] = None
    valid_from: Optional[ValidRelation] = None
    valid_to: Optional[ValidRelation] = None

    def copy(self) -> "Variable":
        return replace(
            self,
            code_map={name: code.copy() for name, code in self.code_map.items()},
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "editMode": self.edit_mode,
            "codeMap": {name: code.to_payload() for name, code in self.code_map.items()},
        }
        if self.relations is not None:
            payload["relations"] = [rule.to_payload() for rule in self.relations]
        if self.instruction:
            payload["instruction"] = self.instruction
        return payload


VariableMap = Dict[str, Variable]


@dataclass
class AnswerOption:
    code: str
    tree: str
    color: Optional[str]
    makes_irrelevant: List[str] = field(default_factory=list)
    required_for: List[str] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "tree": self.tree,
            "color": self.color,
            "makes_irrelevant": list(self.makes_irrelevant),
            "required_for": list(self.required_for),
        }


@dataclass
class Question:
    name: str
    type: str
    question: Optional[str]
    code_map: Dict[str, Code]
    code_tree: List[Code]
    options: List[AnswerOption]
    swipe_options: Dict[str, AnswerOption]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "question": self.question,
            "options": [option.to_payload() for option in self.options],
            "swipeOptions": {
                direction: option.code for direction, option in self.swipe_options.items()
            },
        }


__all__ = [
    "Annotation",
    "AnnotationKey",
    "AnswerOption",
    "Code",
    "CodeRelation",
    "FieldAnnotations",
    "Question",
    "RelationAnnotation",
    "RelationAnnotations",
    "RelationRule",
    "SpanAnnotation",
    "SpanAnnotations",
    "SpanRef",
    "Token",
    "ValidRelation",
    "Variable",
    "VariableMap",
]
