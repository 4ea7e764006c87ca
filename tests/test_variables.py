import logging

import pytest

from annotinder.codebook import prepare_variables
from annotinder.shared.models import Code
from annotinder.variables import (
    WILDCARD,
    build_full_variable_map,
    build_variable_map,
    valid_relations,
)


@pytest.fixture
def full_map():
    variables = prepare_variables(
        {
            "variables": [
                {"name": "sent", "codes": ["pos", "neg", {"code": "off", "active": False}]},
                {
                    "name": "rel",
                    "codes": ["supports", "attacks"],
                    "relations": [
                        {
                            "codes": ["supports"],
                            "from": {"variable": "sent", "values": ["pos"]},
                            "to": {"variable": "sent"},
                        },
                        {"codes": ["attacks"]},
                    ],
                },
                {
                    "name": "link",
                    "codes": ["same"],
                    "relations": [
                        {
                            "from": {"variable": "sent", "values": ["pos"]},
                            "to": {"variable": "sent", "values": ["pos"]},
                        }
                    ],
                },
            ]
        }
    )
    return build_full_variable_map(variables)


def _codes(found):
    return {relation_id: [code.code for code in codes] for relation_id, codes in found.items()}


def test_full_map_keeps_only_usable_codes(full_map):
    assert list(full_map["sent"].code_map) == ["pos", "neg"]
    assert full_map["sent"].valid_from is None


def test_valid_relation_index(full_map):
    rel = full_map["rel"]

    assert _codes(rel.valid_from["sent"]["pos"]) == {0: ["supports"]}
    assert _codes(rel.valid_from[WILDCARD][WILDCARD]) == {1: ["attacks"]}
    assert _codes(rel.valid_to["sent"][WILDCARD]) == {0: ["supports"]}


def test_valid_relations_combines_wildcards(full_map):
    rel = full_map["rel"]

    assert _codes(valid_relations(rel.valid_from, "sent", "pos")) == {0: ["supports"], 1: ["attacks"]}
    assert _codes(valid_relations(rel.valid_from, "sent", "neg")) == {1: ["attacks"]}
    assert _codes(valid_relations(rel.valid_to, "sent", "neg")) == {0: ["supports"], 1: ["attacks"]}
    assert valid_relations(None, "sent", "pos") == {}


def test_specific_entry_overrides_wildcard():
    valid = {
        WILDCARD: {WILDCARD: {0: [Code("any")]}},
        "x": {"y": {0: [Code("specific")]}},
    }

    assert _codes(valid_relations(valid, "x", "y")) == {0: ["specific"]}
    assert _codes(valid_relations(valid, "x", "z")) == {0: ["any"]}


def test_span_variable_map(full_map):
    scoped = build_variable_map(full_map, "sent")

    assert scoped.variable_type == "span"
    assert list(scoped.variable_map) == ["sent"]
    assert scoped.show_values is scoped.variable_map
    assert scoped.edit_mode is False


def test_relation_variable_shows_endpoint_codes(full_map):
    scoped = build_variable_map(full_map, "link")

    assert scoped.variable_type == "relation"
    assert list(scoped.variable_map) == ["link"]
    assert set(scoped.show_values) == {"link", "sent"}
    assert list(scoped.show_values["sent"].code_map) == ["pos"]


def test_unconstrained_relation_side_shows_everything(full_map):
    scoped = build_variable_map(full_map, "rel")

    assert set(scoped.show_values) == {"sent", "rel", "link"}
    assert list(scoped.show_values["sent"].code_map) == ["pos", "neg"]


def test_edit_all_selects_every_variable(full_map):
    scoped = build_variable_map(full_map, "EDIT ALL")

    assert set(scoped.variable_map) == {"sent", "rel", "link"}
    assert scoped.edit_mode is True


def test_restricted_codes_limit_and_extend(full_map):
    scoped = build_variable_map(full_map, "sent", {"sent": ["neg", "new", "EMPTY"]})

    code_map = scoped.variable_map["sent"].code_map
    assert list(code_map) == ["neg", "new"]
    assert code_map["new"].color.startswith("#")
    assert list(full_map["sent"].code_map) == ["pos", "neg"]


def test_restricted_codes_as_mapping(full_map):
    scoped = build_variable_map(full_map, "sent", {"sent": {"pos": True, "neg": False}})

    assert list(scoped.variable_map["sent"].code_map) == ["pos"]


def test_unknown_or_missing_selection(full_map, caplog):
    with caplog.at_level(logging.WARNING, logger="annotinder.variables"):
        scoped = build_variable_map(full_map, "nope")

    assert scoped.variable_map == {}
    assert scoped.show_values == {}
    assert any(r.getMessage() == "variable_unknown" for r in caplog.records)

    empty = build_variable_map(None, "sent")
    assert empty.variable_map is None and empty.show_values is None
