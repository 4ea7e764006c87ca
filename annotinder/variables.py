"""Variable maps scoped to the variable a coder is currently working on."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .codebook import standardize_codes
from .config import CodebookConfig
from .shared.models import Code, RelationRule, ValidRelation, Variable, VariableMap

LOGGER = logging.getLogger(__name__)

WILDCARD = "*"


@dataclass
class ScopedVariableMap:
    """Variable map for the current selection.

    ``show_values`` lists the span annotations the document should display.
    It equals ``variable_map`` except for relation variables, where it lists
    the span codes that can be used as relation endpoints.
    """

    variable_map: Optional[VariableMap]
    show_values: Optional[VariableMap]
    variable_type: str = "span"
    edit_mode: bool = False


def _add_valid_relation(
    valid: ValidRelation,
    relation_id: int,
    variable: Optional[str],
    values: Optional[Sequence[str]],
    codes: List[Code],
) -> None:
    if not variable:
        valid.setdefault(WILDCARD, {}).setdefault(WILDCARD, {})[relation_id] = codes
        return
    entries = valid.setdefault(variable, {})
    for value in values if values else [WILDCARD]:
        entries.setdefault(value, {})[relation_id] = codes


def get_valid_relation_codes(
    relations: Optional[Sequence[RelationRule]], code_map: Dict[str, Code]
) -> Tuple[Optional[ValidRelation], Optional[ValidRelation]]:
    """Index relation rules by the ``(variable, value)`` of their endpoints.

    Returns ``(valid_from, valid_to)`` mapping ``variable -> value ->
    {relation id -> relation codes}``. A rule side without a variable is
    stored under ``valid["*"]["*"]`` and one without values under
    ``valid[variable]["*"]``.
    """
    if not relations:
        return None, None
    valid_from: ValidRelation = {}
    valid_to: ValidRelation = {}
    for relation_id, rule in enumerate(relations):
        names = rule.codes if rule.codes is not None else list(code_map)
        codes = [code_map[name] for name in names if name in code_map]
        from_side, to_side = rule.from_, rule.to
        _add_valid_relation(
            valid_from,
            relation_id,
            from_side.variable if from_side else None,
            from_side.values if from_side else None,
            codes,
        )
        _add_valid_relation(
            valid_to,
            relation_id,
            to_side.variable if to_side else None,
            to_side.values if to_side else None,
            codes,
        )
    return valid_from, valid_to


def valid_relations(valid: Optional[ValidRelation], variable: str, value: str) -> Dict[int, List[Code]]:
    """Return ``{relation id: codes}`` a span with ``variable``/``value`` can take part in.

    Wildcard entries apply to every span; a more specific entry for the same
    relation id replaces the wildcard one.
    """
    if not valid:
        return {}
    found: Dict[int, List[Code]] = {}
    for variable_key, value_key in ((WILDCARD, WILDCARD), (variable, WILDCARD), (variable, value)):
        found.update(valid.get(variable_key, {}).get(value_key, {}))
    return dict(sorted(found.items()))


def build_full_variable_map(variables: Iterable[Variable]) -> VariableMap:
    """Return every variable with only its usable codes and its relation indexes."""
    full: VariableMap = {}
    for variable in variables:
        code_map = {
            name: code.copy()
            for name, code in variable.code_map.items()
            if code.active and code.active_parent
        }
        valid_from, valid_to = get_valid_relation_codes(variable.relations, variable.code_map)
        full[variable.name] = replace(
            variable, code_map=code_map, valid_from=valid_from, valid_to=valid_to
        )
    return full


def _restricted_values(restricted: Any) -> List[str]:
    if isinstance(restricted, Mapping):
        return [str(value) for value, allowed in restricted.items() if allowed]
    return [str(value) for value in restricted or []]


def _relation_show_values(
    vmap: VariableMap, full_map: VariableMap, selected_variable: str
) -> VariableMap:
    show_values: VariableMap = {selected_variable: vmap[selected_variable]}
    value_map: Dict[str, List[str]] = {}

    for rule in full_map[selected_variable].relations or []:
        sides = (rule.from_, rule.to)
        if any(side is None or not side.variable for side in sides):
            # an unconstrained side can connect to any span annotation
            return {name: variable.copy() for name, variable in full_map.items()}
        for side in sides:
            if side.variable not in full_map:
                LOGGER.warning(
                    "relation_unknown_variable",
                    extra={"relation_variable": selected_variable, "variable": side.variable},
                )
                continue
            values = side.values if side.values is not None else list(full_map[side.variable].code_map)
            allowed = value_map.setdefault(side.variable, [])
            for value in values:
                if value not in allowed:
                    allowed.append(value)

    for name, values in value_map.items():
        source = full_map[name]
        show_values[name] = replace(
            source,
            code_map={value: source.code_map[value].copy() for value in values if value in source.code_map},
        )
    return show_values


def build_variable_map(
    full_map: Optional[VariableMap],
    selected_variable: Optional[str],
    restricted_codes: Optional[Mapping[str, Any]] = None,
    config: Optional[CodebookConfig] = None,
) -> ScopedVariableMap:
    """Scope ``full_map`` to ``selected_variable`` (or every variable for "EDIT ALL").

    ``restricted_codes`` maps variable names to the values allowed in the
    current unit. Allowed values missing from the codebook are added as plain
    codes, and the variable's codes are reduced to exactly the allowed set.
    """
    config = config or CodebookConfig()
    restricted_codes = restricted_codes or {}
    if not full_map or not selected_variable:
        return ScopedVariableMap(None, None)

    if selected_variable == config.edit_all:
        vmap = {name: variable.copy() for name, variable in full_map.items()}
    elif selected_variable in full_map:
        vmap = {selected_variable: full_map[selected_variable].copy()}
    else:
        LOGGER.warning("variable_unknown", extra={"variable": selected_variable})
        return ScopedVariableMap({}, {})

    for name, restricted in restricted_codes.items():
        if name not in vmap:
            continue
        allowed = [value for value in _restricted_values(restricted) if value != config.empty_value]
        variable = vmap[name]
        for code in standardize_codes([v for v in allowed if v not in variable.code_map]):
            variable.code_map[code.code] = code
        variable.code_map = {
            value: code for value, code in variable.code_map.items() if value in allowed
        }

    selected = vmap.get(selected_variable)
    if selected is not None and full_map[selected_variable].relations:
        variable_type = "relation"
        show_values = _relation_show_values(vmap, full_map, selected_variable)
    else:
        variable_type = "span"
        show_values = vmap

    edit_mode = selected_variable == config.edit_all or bool(selected and selected.edit_mode)
    return ScopedVariableMap(vmap, show_values, variable_type, edit_mode)


__all__ = [
    "ScopedVariableMap",
    "WILDCARD",
    "build_full_variable_map",
    "build_variable_map",
    "get_valid_relation_codes",
    "valid_relations",
]
