"""Codebook helpers: code trees, activation and answer options.

A codebook lists codes as edges (``{"code", "parent"?, ...}``). The helpers
in this module turn that list into a code map with computed ancestry, lay it
out as a depth-first code tree array, propagate ``required_for`` constraints
into ``makes_irrelevant`` and derive the selectable options of a question.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .config import CodebookConfig
from .shared.models import AnswerOption, Code, Question, RelationRule, Variable
from .utils import stable_hash

LOGGER = logging.getLogger(__name__)

SWIPE_DIRECTIONS = ("left", "right", "up")


def _as_list(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(item) for item in value]
    return [str(value)]


def code_color(code: str) -> str:
    """Return a stable ``#RRGGBB`` colour derived from the code name."""
    return "#" + stable_hash("code-color", code)[:6]


def standardize_color(color: Optional[str], alpha: str = "88") -> Optional[str]:
    """Normalize hex colours to ``#RRGGBB`` followed by ``alpha``.

    Colours that are not hex codes (named colours, ``rgb()``) are returned
    unchanged.
    """
    if not color:
        return color
    value = color.strip()
    if not value.startswith("#"):
        return value
    digits = value[1:]
    if len(digits) in (3, 4):
        digits = "".join(ch * 2 for ch in digits[:3])
    if len(digits) in (6, 8):
        return f"#{digits[:6]}{alpha}"
    return value


def standardize_codes(codes: Optional[Iterable[Any]], fill_missing_color: bool = True) -> List[Code]:
    """Turn codebook code entries (strings or mappings) into :class:`Code` records."""
    standardized: List[Code] = []
    for entry in codes or []:
        data: Mapping[str, Any] = entry if isinstance(entry, Mapping) else {"code": entry}
        name = data.get("code")
        if name is None or str(name) == "":
            LOGGER.warning("code_missing_name", extra={"entry": str(entry)})
            continue
        name = str(name)
        swipe = data.get("swipe")
        if swipe is not None and swipe not in SWIPE_DIRECTIONS:
            LOGGER.warning("code_invalid_swipe", extra={"code": name, "swipe": str(swipe)})
            swipe = None
        parent = data.get("parent")
        color = data.get("color")
        if not color and fill_missing_color:
            color = code_color(name)
        standardized.append(
            Code(
                code=name,
                color=color or None,
                parent=str(parent) if parent not in (None, "") else None,
                active=bool(data.get("active", True)),
                makes_irrelevant=_as_list(data.get("makes_irrelevant")),
                required_for=_as_list(data.get("required_for")),
                swipe=swipe,
            )
        )
    return standardized


def _ancestors(code_map: Dict[str, Code], name: str) -> List[str]:
    """Return the ancestor path of ``name``, root first, cutting parent cycles."""
    path: List[str] = []
    seen = {name}
    current = code_map[name]
    while current.parent is not None:
        parent = current.parent
        if parent in seen:
            LOGGER.warning("code_parent_cycle", extra={"code": current.code, "parent": parent})
            current.parent = None
            if current.code in code_map[parent].children:
                code_map[parent].children.remove(current.code)
            break
        seen.add(parent)
        path.append(parent)
        current = code_map[parent]
    path.reverse()
    return path


def code_book_edges_to_map(codes: Optional[Iterable[Any]], fill_missing_color: bool = True) -> Dict[str, Code]:
    """Build a code map with ``children``, ``tree``, ``depth`` and ``active_parent``.

    Duplicate codes keep their first definition and codes whose parent is
    unknown become roots; both are logged.
    """
    code_map: Dict[str, Code] = {}
    for code in standardize_codes(codes, fill_missing_color):
        if code.code in code_map:
            LOGGER.warning("code_duplicate", extra={"code": code.code})
            continue
        code_map[code.code] = code

    for code in code_map.values():
        if code.parent is None:
            continue
        if code.parent not in code_map:
            LOGGER.warning("code_parent_missing", extra={"code": code.code, "parent": code.parent})
            code.parent = None
            continue
        code_map[code.parent].children.append(code.code)

    for name in code_map:
        _ancestors(code_map, name)
    for code in code_map.values():
        code.tree = _ancestors(code_map, code.code)
        code.depth = len(code.tree)
        code.active_parent = all(code_map[ancestor].active for ancestor in code.tree)
    return code_map


def get_code_tree_array(code_map: Dict[str, Code]) -> List[Code]:
    """Return copies of the codes in depth-first order, roots in codebook order."""
    ordered: List[Code] = []

    def visit(name: str) -> None:
        code = code_map[name]
        ordered.append(code.copy())
        for child in code.children:
            visit(child)

    for name, code in code_map.items():
        if code.parent is None:
            visit(name)
    return ordered


def add_required_for(code_tree: Sequence[Code]) -> List[Code]:
    """Express ``required_for`` targets as ``makes_irrelevant`` of every other code.

    A code that is not required for a target question makes that question
    irrelevant, so consumers only need to handle ``makes_irrelevant``.
    """
    targets: List[str] = []
    for code in code_tree:
        for target in code.required_for:
            if target not in targets:
                targets.append(target)

    augmented: List[Code] = []
    for code in code_tree:
        code = code.copy()
        for target in targets:
            if target not in code.required_for and target not in code.makes_irrelevant:
                code.makes_irrelevant.append(target)
        augmented.append(code)
    return augmented


def get_options(
    code_tree: Sequence[Code], config: Optional[CodebookConfig] = None
) -> Tuple[List[AnswerOption], Dict[str, AnswerOption]]:
    """Return the selectable answer options and their swipe directions."""
    config = config or CodebookConfig()
    options: List[AnswerOption] = []
    swipe_options: Dict[str, AnswerOption] = {}

    for code in code_tree:
        if not code.active or not code.active_parent:
            continue
        option = AnswerOption(
            code=code.code,
            tree=config.tree_separator.join(code.tree),
            color=standardize_color(code.color, config.option_alpha),
            makes_irrelevant=list(code.makes_irrelevant),
            required_for=list(code.required_for),
        )
        if code.swipe:
            swipe_options[code.swipe] = option
        options.append(option)

    if not swipe_options:
        for direction, option in zip(SWIPE_DIRECTIONS, options):
            swipe_options[direction] = option
    return options, swipe_options


def prepare_questions(codebook: Mapping[str, Any], config: Optional[CodebookConfig] = None) -> List[Question]:
    """Prepare every question of a ``questions`` codebook for display."""
    config = config or CodebookConfig()
    questions: List[Question] = []
    for raw in codebook.get("questions") or []:
        question_type = str(raw.get("type") or "select code")
        fill_missing_color = question_type not in config.no_color_types
        code_map = code_book_edges_to_map(raw.get("codes"), fill_missing_color)
        code_tree = add_required_for(get_code_tree_array(code_map))
        options, swipe_options = get_options(code_tree, config)
        questions.append(
            Question(
                name=str(raw.get("name") or ""),
                type=question_type,
                question=raw.get("question"),
                code_map=code_map,
                code_tree=code_tree,
                options=options,
                swipe_options=swipe_options,
            )
        )
    return questions


def prepare_variables(codebook: Mapping[str, Any], config: Optional[CodebookConfig] = None) -> List[Variable]:
    """Build the variables of an ``annotate`` codebook."""
    config = config or CodebookConfig()
    variables: List[Variable] = []
    for raw in codebook.get("variables") or []:
        name = raw.get("name")
        if not name:
            LOGGER.warning("variable_missing_name")
            continue
        relations = raw.get("relations")
        variable_type = str(raw.get("type") or ("relation" if relations else "span"))
        fill_missing_color = variable_type not in config.no_color_types
        variables.append(
            Variable(
                name=str(name),
                type=variable_type,
                code_map=code_book_edges_to_map(raw.get("codes"), fill_missing_color),
                relations=[RelationRule.from_payload(r) for r in relations] if relations else None,
                edit_mode=bool(raw.get("editMode", raw.get("edit_mode", False))),
                instruction=raw.get("instruction"),
            )
        )
    return variables


__all__ = [
    "add_required_for",
    "code_book_edges_to_map",
    "code_color",
    "get_code_tree_array",
    "get_options",
    "prepare_questions",
    "prepare_variables",
    "standardize_codes",
    "standardize_color",
]
