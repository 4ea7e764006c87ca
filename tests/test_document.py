import pytest

from annotinder.document import UnitSession, get_doc, initialize_code_history, prepare_grid
from annotinder.shared.errors import StaleUnitError, ValidationError


def _unit(text, annotations=None):
    return {
        "id": "u1",
        "unit": {
            "textFields": [{"name": "text", "value": text}],
            "metaFields": [{"name": "source", "value": "news"}],
            "annotations": annotations or [],
        },
    }


POS_HELLO = {"variable": "sent", "value": "pos", "field": "text", "offset": 0, "length": 5}


def test_prepare_grid_names_areas_and_places_fields():
    layout, placed = prepare_grid(
        {"areas": [["text", "image"], ["meta"]], "rows": [1, 2], "columns": [2]},
        {
            "textFields": [{"name": "text", "value": "a"}, {"name": "hidden", "value": "b"}],
            "imageFields": [{"name": "image", "value": "pic.png"}],
        },
    )

    assert layout.areas == '"f0 f1" "f2 f2"'
    assert layout.rows == "1fr 2fr"
    assert layout.columns == "2fr 2fr"
    assert layout.area_names == {"text": "f0", "image": "f1", "meta": "f2"}
    assert placed["textFields"] == [{"name": "text", "value": "a", "grid_area": "f0"}]
    assert placed["imageFields"][0]["grid_area"] == "f1"


def test_prepare_grid_keeps_empty_cells():
    layout, _ = prepare_grid({"areas": [["text", "."]]}, {})

    assert layout.areas == '"f0 ."'
    assert layout.rows is None


def test_get_doc_tokenizes_text_fields():
    doc = get_doc(_unit("Hello world."))

    assert [t.text for t in doc.tokens] == ["Hello", "world", "."]
    assert doc.meta_fields == [{"name": "source", "value": "news"}]
    assert doc.grid is None


def test_get_doc_prefers_imported_tokens():
    doc = get_doc({"tokens": [{"text": "a", "offset": 0}, {"text": "b", "offset": 2}], "textFields": []})

    assert [t.text for t in doc.tokens] == ["a", "b"]


def test_get_doc_only_tokenizes_fields_on_the_grid():
    doc = get_doc(
        {
            "textFields": [{"name": "title", "value": "Shown"}, {"name": "body", "value": "Hidden"}],
            "grid": {"areas": [["title"]]},
        }
    )

    assert [t.text for t in doc.tokens] == ["Shown"]
    assert doc.text_fields[0]["grid_area"] == "f0"


def test_initialize_code_history():
    records = [POS_HELLO, {"variable": "sent", "value": "neg"}, {**POS_HELLO, "offset": 6}]

    assert initialize_code_history(records) == {"sent": ["pos", "neg"]}
    assert initialize_code_history(records, 1) == {"sent": ["pos"]}


def test_session_load_and_export():
    session = UnitSession()
    manager = session.load(_unit("Hello world.", [POS_HELLO]))

    manager.add_span_annotation("sent", "neg", 1)

    payloads = [record.to_payload() for record in session.export()]
    assert [(p["value"], p["offset"]) for p in payloads] == [("pos", 0), ("neg", 6)]
    assert session.code_history == {"sent": ["neg", "pos"]}


def test_export_before_load_raises():
    with pytest.raises(StaleUnitError):
        UnitSession().export()


def test_loading_a_new_unit_supersedes_the_old_one():
    session = UnitSession()
    old_manager = session.load(_unit("Hello world.", [POS_HELLO]))
    old_tokens = session.tokens

    session.load(_unit("Another unit here."))

    assert old_manager.stale is True
    with pytest.raises(StaleUnitError):
        old_manager.add_span_annotation("sent", "pos", 1)
    with pytest.raises(StaleUnitError):
        session.export(tokens=old_tokens)
    assert session.export(tokens=session.tokens) == []


def test_explicit_annotations_override_unit_annotations():
    session = UnitSession()
    session.load(_unit("Hello world.", [POS_HELLO]), annotations=[{"variable": "topic", "value": "greeting"}])

    assert [record.to_payload() for record in session.export()] == [{"variable": "topic", "value": "greeting"}]


def test_token_annotations_are_used_without_annotation_list():
    label = [{"name": "sent", "value": "pos"}]
    session = UnitSession()
    session.load(
        {
            "unit": {
                "tokens": [
                    {"text": "a", "offset": 0, "annotations": label},
                    {"text": "b", "offset": 2, "annotations": label},
                ]
            }
        }
    )

    payloads = [record.to_payload() for record in session.export()]
    assert payloads == [
        {"variable": "sent", "value": "pos", "field": "text", "offset": 0, "length": 3, "text": "a b"}
    ]


def test_failed_load_keeps_current_unit():
    session = UnitSession()
    manager = session.load(_unit("Hello world.", [POS_HELLO]))

    with pytest.raises(ValidationError):
        session.load({"tokens": [{"text": "Hello", "offset": 0}, {"text": "world", "offset": 3}]})

    assert session.manager is manager
    assert manager.stale is False
    assert len(session.export()) == 1


def test_prepare_grid_skips_empty_rows():
    layout, placed = prepare_grid({"areas": [[], ["text"]]}, {"textFields": [{"name": "text", "value": "a"}]})

    assert layout.areas == '"f0"'
    assert placed["textFields"][0]["grid_area"] == "f0"
