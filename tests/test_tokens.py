from annotinder.config import TokenizerConfig
from annotinder.tokens import parse_tokens


def _field_text(tokens, name):
    return "".join(t.pre + t.text + t.post for t in tokens if t.field == name)


def test_parse_tokens_hello_world():
    tokens = parse_tokens([{"name": "text", "value": "Hello world."}])

    assert [t.text for t in tokens] == ["Hello", "world", "."]
    assert [t.offset for t in tokens] == [0, 6, 11]
    assert [t.length for t in tokens] == [5, 5, 1]
    assert [t.index for t in tokens] == [0, 1, 2]
    assert all(t.coding_unit for t in tokens)
    assert all(t.field == "text" for t in tokens)


def test_parse_tokens_reconstructs_field_text():
    fields = [
        {"name": "title", "value": "  Hi there"},
        {"name": "body", "value": "First sentence here.  Second one!\nNew paragraph"},
    ]

    tokens = parse_tokens(fields)

    assert _field_text(tokens, "title") == "  Hi there"
    assert _field_text(tokens, "body") == fields[1]["value"]
    assert tokens[0].pre == "  "
    assert tokens[0].offset == 2


def test_parse_tokens_offsets_point_into_field_text():
    value = "Numbers like 3.14 and e-mail stay whole."
    tokens = parse_tokens([{"name": "text", "value": value}])

    for token in tokens:
        assert value[token.offset : token.offset + token.length] == token.text


def test_parse_tokens_field_offset_shifts_positions():
    tokens = parse_tokens([{"name": "body", "value": "Hi you", "offset": 100}])

    assert [t.offset for t in tokens] == [100, 103]


def test_parse_tokens_joins_list_values():
    tokens = parse_tokens([{"name": "text", "value": ["Hello ", "world"]}])

    assert [t.text for t in tokens] == ["Hello", "world"]
    assert tokens[1].offset == 6


def test_parse_tokens_paragraphs_follow_line_breaks_and_fields():
    tokens = parse_tokens(
        [
            {"name": "a", "value": "Alpha beta\nGamma"},
            {"name": "b", "value": "Delta"},
        ]
    )
    paragraphs = {t.text: t.paragraph for t in tokens}

    assert paragraphs["Alpha"] == paragraphs["beta"] == 0
    assert paragraphs["Gamma"] == 1
    assert paragraphs["Delta"] > paragraphs["Gamma"]


def test_parse_tokens_context_marks_coding_unit():
    tokens = parse_tokens(
        [
            {
                "name": "text",
                "value": "middle part",
                "context_before": "before ",
                "context_after": " after",
            }
        ]
    )

    assert [(t.text, t.coding_unit) for t in tokens] == [
        ("before", False),
        ("middle", True),
        ("part", True),
        ("after", False),
    ]
    assert _field_text(tokens, "text") == "before middle part after"
    assert tokens[1].offset == 7


def test_parse_tokens_unit_bounds():
    tokens = parse_tokens([{"name": "text", "value": "a b c", "unit_start": 2, "unit_end": 2}])

    assert [t.coding_unit for t in tokens] == [False, True, False]


def test_parse_tokens_unit_end_closes_following_fields():
    tokens = parse_tokens(
        [
            {"name": "first", "value": "in unit", "unit_start": 0, "unit_end": 6},
            {"name": "second", "value": "outside"},
        ]
    )

    assert [t.coding_unit for t in tokens] == [True, True, False]


def test_parse_tokens_default_field_name():
    tokens = parse_tokens([{"value": "word"}], TokenizerConfig(default_field="body"))

    assert tokens[0].field == "body"


def test_parse_tokens_is_deterministic():
    fields = [{"name": "text", "value": "Same input, same tokens."}]

    assert parse_tokens(fields) == parse_tokens(fields)


def test_parse_tokens_empty_fields():
    assert parse_tokens([]) == []
    assert parse_tokens([{"name": "text", "value": ""}]) == []


def test_parse_tokens_keeps_whitespace_only_context():
    tokens = parse_tokens([{"name": "text", "value": "word", "context_before": "  ", "context_after": " "}])

    assert _field_text(tokens, "text") == "  word "
    assert tokens[0].pre == "  "
    assert tokens[0].offset == 2
    assert tokens[0].coding_unit is True


def _assert_offsets_increase(tokens):
    for prev, token in zip(tokens, tokens[1:]):
        if prev.field == token.field:
            assert prev.offset + prev.length <= token.offset


def test_parse_tokens_offsets_never_overlap():
    tokens = parse_tokens(
        [
            {"name": "title", "value": "A short title. With two sentences!"},
            {"name": "body", "value": "First line here.\nSecond line, with commas; and more.  Done.", "offset": 40},
            {"name": "note", "value": "tail", "context_before": "lead in ", "context_after": " end."},
        ]
    )

    assert len({t.field for t in tokens}) == 3
    _assert_offsets_increase(tokens)
