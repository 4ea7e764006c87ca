"""Tokenization of unit text fields and import of pre-tokenized data.

Both entry points return the same flat :class:`Token` sequence:

* :func:`parse_tokens` segments raw text fields with ``razdel``. Each token
  keeps the whitespace around it in ``pre``/``post`` so that concatenating
  ``pre + text + post`` over the tokens of a field restores the field text.
* :func:`import_tokens` normalizes tokens produced elsewhere (row or column
  layout) and fills in offsets, whitespace and paragraph numbers.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd
from razdel import sentenize as razdel_sentenize
from razdel import tokenize as razdel_tokenize

from .config import TokenizerConfig
from .shared.errors import ValidationError
from .shared.models import Annotation, Token

LOGGER = logging.getLogger(__name__)

_LINE_BREAK = re.compile(r"\r?\n")


# ------------------------------- tokenizer --------------------------------- #


def _segment(text: str) -> List[Tuple[int, int, str]]:
    """Return ``(start, stop, text)`` for each term, with offsets into ``text``."""
    terms: List[Tuple[int, int, str]] = []
    for sentence in razdel_sentenize(text):
        for item in razdel_tokenize(sentence.text):
            start = sentence.start + item.start
            terms.append((start, start + len(item.text), item.text))
    return terms


def _with_whitespace(text: str) -> List[Tuple[int, str, str, str]]:
    """Attach the surrounding whitespace to each term as ``(start, text, pre, post)``."""
    terms = _segment(text)
    out: List[Tuple[int, str, str, str]] = []
    for i, (start, stop, term) in enumerate(terms):
        pre = text[:start] if i == 0 else ""
        next_start = terms[i + 1][0] if i + 1 < len(terms) else len(text)
        out.append((start, term, pre, text[stop:next_start]))
    return out


def parse_tokens(
    text_fields: Sequence[Mapping[str, Any]],
    config: Optional[TokenizerConfig] = None,
) -> List[Token]:
    """Tokenize text fields into one flat token sequence.

    Each field is a mapping with ``name`` and ``value`` and optionally
    ``offset`` (position of ``value`` in the original document),
    ``unit_start``/``unit_end`` (character positions bounding the coding
    unit) or ``context_before``/``context_after`` (read-only text around the
    coding unit). Without any bounds the whole text is coding unit.
    """
    config = config or TokenizerConfig()
    tokens: List[Token] = []
    paragraph = 0

    has_unit_start = any(
        f.get("unit_start") is not None or f.get("context_before") is not None for f in text_fields
    )
    unit_started = not has_unit_start
    unit_ended = False

    for text_field in text_fields:
        name = text_field.get("name") or config.default_field
        offset = int(text_field.get("offset") or 0)
        value = text_field.get("value")
        if value is None:
            value = ""
        if isinstance(value, (list, tuple)):
            value = "".join(value)

        unit_start = text_field.get("unit_start")
        unit_end = text_field.get("unit_end")
        context_before = text_field.get("context_before")
        context_after = text_field.get("context_after")

        parts = [value]
        if context_before is not None:
            parts.insert(0, context_before)
            unit_start = offset + len(context_before)
        if context_after is not None:
            unit_end = offset + len(context_before or "") + len(value) - 1
            parts.append(context_after)

        field_tokens = 0
        leading = ""
        for part in parts:
            terms = _with_whitespace(part)
            if not terms and part:
                # whitespace-only part: keep it reconstructible on a neighbouring token
                if field_tokens:
                    tokens[-1] = replace(tokens[-1], post=tokens[-1].post + part)
                else:
                    leading += part
            for start, term, pre, post in terms:
                if leading:
                    pre, leading = leading + pre, ""
                position = start + offset
                if unit_start is not None and position >= unit_start:
                    unit_started = True
                if unit_end is not None and position > unit_end:
                    unit_ended = True
                tokens.append(
                    Token(
                        field=name,
                        offset=position,
                        length=len(term),
                        paragraph=paragraph,
                        index=len(tokens),
                        text=term,
                        pre=pre,
                        post=post,
                        coding_unit=unit_started and not unit_ended,
                    )
                )
                field_tokens += 1
                if _LINE_BREAK.search(post):
                    paragraph += 1
            offset += len(part)
        paragraph += 1

        if unit_end is not None:
            unit_ended = True
    return tokens


# ----------------------------- token importer ------------------------------ #


def tokens_column_to_row(columns: Mapping[str, Sequence[Any]]) -> List[Dict[str, Any]]:
    """Transpose ``{"offset": [0, 6], "text": [...]}`` into one dict per token."""
    lengths = {len(values) for values in columns.values()}
    if len(lengths) > 1:
        raise ValidationError(
            "Invalid token data: column-oriented tokens must have columns of equal length"
        )
    frame = pd.DataFrame({name: list(values) for name, values in columns.items()}, dtype=object)
    return frame.to_dict(orient="records")


def tokens_from_frame(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    """Return token rows from a table, with missing cells as ``None``."""
    cleaned = frame.astype(object).where(pd.notna(frame), None)
    return cleaned.to_dict(orient="records")


def _as_post(space: Any) -> Optional[str]:
    if space is None:
        return None
    if isinstance(space, bool):
        return " " if space else ""
    return str(space)


def _prepare_rows(raw: Any, config: TokenizerConfig) -> List[Dict[str, Any]]:
    if isinstance(raw, pd.DataFrame):
        rows = tokens_from_frame(raw)
    elif isinstance(raw, Mapping):
        rows = tokens_column_to_row(raw)
    else:
        rows = [dict(row) for row in raw]

    for i, row in enumerate(rows):
        if row.get("text") is None:
            if row.get("token") is None:
                raise ValidationError(
                    f"Invalid token data: imported tokens must have 'text' or 'token' field (token {i})"
                )
            row["text"] = row["token"]
        row["text"] = str(row["text"])
        if row.get("offset") is None and row.get("start") is not None:
            row["offset"] = row["start"]
        if row.get("offset") is not None:
            row["offset"] = int(row["offset"])
        row["length"] = int(row["length"]) if row.get("length") is not None else len(row["text"])
        row["pre"] = str(row["pre"]) if row.get("pre") is not None else ""
        if row.get("post") is None:
            row["post"] = _as_post(row.get("space"))
        if row.get("field") is None:
            row["field"] = config.default_field
    return rows


def import_tokens(
    raw: Iterable[Mapping[str, Any]] | Mapping[str, Sequence[Any]] | pd.DataFrame,
    config: Optional[TokenizerConfig] = None,
) -> List[Token]:
    """Normalize externally tokenized data into :class:`Token` records.

    ``raw`` can be a list of token dicts, a column mapping or a DataFrame.
    Missing offsets are accumulated from the preceding tokens of the same
    field, missing whitespace is inferred from offset gaps and paragraph
    numbers are renumbered to a dense sequence starting at 0. Tokens whose
    explicit offset lies inside the previous token raise
    :class:`ValidationError`.
    """
    config = config or TokenizerConfig()
    rows = _prepare_rows(raw, config)
    if not rows:
        return []

    tokens: List[Token] = []
    paragraph = 0
    last_paragraph = rows[0].get("paragraph")
    running = 0

    for i, row in enumerate(rows):
        nxt = rows[i + 1] if i + 1 < len(rows) else None
        same_field_next = nxt is not None and nxt["field"] == row["field"]
        field_start = i == 0 or rows[i - 1]["field"] != row["field"]
        if field_start:
            running = 0
        next_pre = len(nxt["pre"]) if same_field_next else 0

        if row.get("offset") is None:
            row["offset"] = running + (len(row["pre"]) if field_start else 0)

        post = row["post"]
        if post is None:
            if same_field_next and nxt.get("offset") is not None:
                gap = nxt["offset"] - row["offset"] - row["length"] - next_pre
                post = " " * max(0, gap)
            elif not same_field_next:
                post = ""
            else:
                post = config.default_post
            row["post"] = post

        end = row["offset"] + row["length"] + len(post) + next_pre
        running = end

        if same_field_next and nxt.get("offset") is not None and nxt["offset"] < end:
            raise ValidationError(
                f'Invalid token position data. The length of "{row["pre"]}{row["text"]}{post}" '
                f'on position {row["offset"]} exceeds the offset of the next token'
            )

        given = row.get("paragraph")
        if given is None:
            token_paragraph = paragraph
            if "\n" in row["text"] or "\n" in post:
                paragraph += 1
        else:
            if given != last_paragraph:
                last_paragraph = given
                paragraph += 1
            token_paragraph = paragraph

        coding_unit = row.get("codingUnit", row.get("coding_unit"))
        annotations = row.get("annotations") or ()
        tokens.append(
            Token(
                field=str(row["field"]),
                offset=row["offset"],
                length=row["length"],
                paragraph=token_paragraph,
                index=i,
                text=row["text"],
                pre=row["pre"],
                post=post,
                coding_unit=True if coding_unit is None else bool(coding_unit),
                annotations=tuple(dict(a) for a in annotations),
            )
        )
    LOGGER.debug("tokens_imported", extra={"n_tokens": len(tokens)})
    return tokens


def import_token_annotations(tokens: Sequence[Token]) -> List[Annotation]:
    """Convert per-token ``{"name", "value"}`` annotations into span records.

    Consecutive tokens of the same field with the same value for a name are
    merged into one record. Empty values are skipped.
    """
    annotations: List[Annotation] = []
    open_runs: Dict[str, Annotation] = {}

    def close(variable: str) -> None:
        annotations.append(open_runs.pop(variable))

    for i, token in enumerate(tokens):
        if i > 0 and tokens[i - 1].field != token.field:
            for variable in list(open_runs):
                close(variable)

        values: Dict[str, str] = {}
        for entry in token.annotations:
            name = entry.get("name", entry.get("variable"))
            value = entry.get("value")
            if name is None or value is None or value == "":
                continue
            values[str(name)] = str(value)

        for variable in list(open_runs):
            if values.get(variable) != open_runs[variable].value:
                close(variable)

        for variable, value in values.items():
            run = open_runs.get(variable)
            if run is None:
                open_runs[variable] = Annotation(
                    variable=variable,
                    value=value,
                    field=token.field,
                    offset=token.offset,
                    length=token.length,
                    index=token.index,
                    text=token.text,
                )
            else:
                previous = tokens[i - 1]
                run.length = token.end - run.offset
                run.text = f"{run.text}{previous.post}{token.pre}{token.text}"

    for variable in list(open_runs):
        close(variable)
    annotations.sort(key=lambda a: (a.index, a.variable))
    return annotations


__all__ = [
    "import_token_annotations",
    "import_tokens",
    "parse_tokens",
    "tokens_column_to_row",
    "tokens_from_frame",
]
