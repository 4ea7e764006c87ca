import logging

from annotinder.codebook import (
    add_required_for,
    code_book_edges_to_map,
    code_color,
    get_code_tree_array,
    get_options,
    prepare_questions,
    prepare_variables,
    standardize_codes,
    standardize_color,
)


def _tree_codes():
    return [
        {"code": "A"},
        {"code": "A1", "parent": "A"},
        {"code": "B", "active": False},
        {"code": "B1", "parent": "B"},
    ]


def test_code_map_computes_tree_depth_and_activation():
    code_map = code_book_edges_to_map(_tree_codes())

    assert code_map["A"].children == ["A1"]
    assert code_map["A1"].tree == ["A"]
    assert code_map["A1"].depth == 1
    assert code_map["B1"].active is True
    assert code_map["B1"].active_parent is False
    assert code_map["A1"].active_parent is True


def test_code_tree_array_is_depth_first():
    tree = get_code_tree_array(code_book_edges_to_map(_tree_codes()))

    assert [code.code for code in tree] == ["A", "A1", "B", "B1"]


def test_options_skip_inactive_branches():
    tree = get_code_tree_array(code_book_edges_to_map(_tree_codes()))

    options, swipe_options = get_options(tree)

    assert [option.code for option in options] == ["A", "A1"]
    assert options[1].tree == "A"
    assert {direction: option.code for direction, option in swipe_options.items()} == {
        "left": "A",
        "right": "A1",
    }


def test_explicit_swipe_disables_automatic_assignment():
    tree = get_code_tree_array(
        code_book_edges_to_map([{"code": "yes", "swipe": "right"}, {"code": "no"}, {"code": "maybe"}])
    )

    _, swipe_options = get_options(tree)

    assert list(swipe_options) == ["right"]
    assert swipe_options["right"].code == "yes"


def test_required_for_becomes_makes_irrelevant_of_other_codes():
    tree = get_code_tree_array(
        code_book_edges_to_map([{"code": "yes", "required_for": "followup"}, {"code": "no"}])
    )

    augmented = add_required_for(tree)

    by_code = {code.code: code for code in augmented}
    assert by_code["no"].makes_irrelevant == ["followup"]
    assert by_code["yes"].makes_irrelevant == []
    assert tree[1].makes_irrelevant == []


def test_parent_cycle_is_cut_and_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="annotinder.codebook"):
        code_map = code_book_edges_to_map([{"code": "a", "parent": "b"}, {"code": "b", "parent": "a"}])

    roots = [code.code for code in code_map.values() if code.parent is None]
    assert len(roots) == 1
    assert sorted(code.code for code in get_code_tree_array(code_map)) == ["a", "b"]
    assert any(r.getMessage() == "code_parent_cycle" for r in caplog.records)


def test_missing_parent_and_duplicates_are_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="annotinder.codebook"):
        code_map = code_book_edges_to_map(
            [
                {"code": "x", "parent": "nope"},
                {"code": "y", "color": "#111111"},
                {"code": "y", "color": "#222222"},
            ]
        )

    assert code_map["x"].parent is None
    assert code_map["x"].tree == []
    assert code_map["y"].color == "#111111"
    messages = {r.getMessage() for r in caplog.records}
    assert {"code_parent_missing", "code_duplicate"} <= messages


def test_standardize_codes_fills_colors():
    codes = standardize_codes(["a", {"code": "b", "color": "blue"}])

    assert codes[0].color == code_color("a")
    assert codes[0].color.startswith("#") and len(codes[0].color) == 7
    assert codes[1].color == "blue"
    assert codes[0].active is True
    assert standardize_codes(["a"], fill_missing_color=False)[0].color is None


def test_standardize_codes_drops_invalid_swipe(caplog):
    with caplog.at_level(logging.WARNING, logger="annotinder.codebook"):
        codes = standardize_codes([{"code": "a", "swipe": "down"}])

    assert codes[0].swipe is None
    assert any(r.getMessage() == "code_invalid_swipe" for r in caplog.records)


def test_standardize_color():
    assert standardize_color("#abc") == "#aabbcc88"
    assert standardize_color("#AABBCCDD", "ff") == "#AABBCCff"
    assert standardize_color("red") == "red"
    assert standardize_color(None) is None


def test_prepare_questions():
    questions = prepare_questions(
        {
            "questions": [
                {"name": "q1", "type": "scale", "question": "How?", "codes": ["low", "high"]},
                {"name": "q2", "question": "Which?", "codes": ["x"]},
            ]
        }
    )

    scale, select = questions
    assert [option.color for option in scale.options] == [None, None]
    assert scale.to_payload()["swipeOptions"] == {"left": "low", "right": "high"}
    assert select.type == "select code"
    assert select.options[0].color.endswith("88")


def test_prepare_variables():
    variables = prepare_variables(
        {
            "variables": [
                {"name": "sent", "codes": ["pos", "neg"], "editMode": True},
                {"name": "rel", "codes": ["supports"], "relations": [{"codes": ["supports"]}]},
                {"codes": ["ignored"]},
            ]
        }
    )

    assert [(v.name, v.type) for v in variables] == [("sent", "span"), ("rel", "relation")]
    assert variables[0].edit_mode is True
    assert list(variables[0].code_map) == ["pos", "neg"]
    assert variables[1].relations[0].codes == ["supports"]
