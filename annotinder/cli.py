"""Command line front end: tokenize units, import tokens, normalize annotations."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional

import pandas as pd
import typer
from rich.console import Console

from .annotations import decode_annotations, encode_annotations
from .codebook import prepare_questions, prepare_variables
from .config import AnnotinderConfig
from .document import get_doc
from .runtime import setup_logging
from .shared.errors import ValidationError
from .tokens import import_tokens, tokens_from_frame
from .variables import build_full_variable_map, build_variable_map

app = typer.Typer(help="Annotinder annotation core tools")
err_console = Console(stderr=True)


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Logging level"),
    json_logs: bool = typer.Option(True, "--json-logs/--plain-logs", help="Log as JSON lines"),
) -> None:
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"unknown log level {log_level!r}", param_hint="--log-level")
    setup_logging(level, json_format=json_logs)


def _load_json(path: Path) -> Any:
    if not path.exists():
        raise typer.BadParameter(f"{path} does not exist")
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _config(cfg: Optional[Path]) -> AnnotinderConfig:
    return AnnotinderConfig.from_overrides(_load_json(cfg) if cfg else None)


def _read(path: Path) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path, keep_default_na=False, na_values=[""])
    if suffix == ".parquet":
        return pd.read_parquet(path)
    if suffix == ".jsonl":
        return pd.read_json(path, lines=True, dtype=False)
    if suffix == ".json":
        return pd.read_json(path, dtype=False)
    raise typer.BadParameter(f"unsupported token file type {suffix!r}")


def _emit(payload: Any) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def _fail(exc: Exception) -> NoReturn:
    err_console.print(f"[red]{exc}[/red]")
    raise typer.Exit(code=1)


@app.command()
def tokenize(
    unit_json: Path = typer.Argument(..., help="Unit JSON file"),
    cfg: Optional[Path] = typer.Option(None, help="JSON config overrides"),
) -> None:
    """Print the tokens of a unit."""
    config = _config(cfg)
    try:
        doc = get_doc(_load_json(unit_json), config)
    except ValidationError as exc:
        _fail(exc)
    _emit([token.to_payload() for token in doc.tokens])


@app.command("import-tokens")
def import_tokens_command(
    token_file: Path = typer.Argument(..., help="Token table (.json, .jsonl, .csv or .parquet)"),
    cfg: Optional[Path] = typer.Option(None, help="JSON config overrides"),
) -> None:
    """Normalize a file of pre-tokenized text."""
    if not token_file.exists():
        raise typer.BadParameter(f"{token_file} does not exist")
    config = _config(cfg)
    try:
        tokens = import_tokens(tokens_from_frame(_read(token_file)), config.tokenizer)
    except ValidationError as exc:
        _fail(exc)
    _emit([token.to_payload() for token in tokens])


@app.command()
def normalize(
    unit_json: Path = typer.Argument(..., help="Unit JSON file"),
    annotations: Optional[Path] = typer.Option(None, help="JSON list of annotations to use instead of the unit's"),
    cfg: Optional[Path] = typer.Option(None, help="JSON config overrides"),
) -> None:
    """Decode a unit's annotations onto its tokens and print the coalesced export."""
    config = _config(cfg)
    unit = _load_json(unit_json)
    try:
        doc = get_doc(unit, config)
    except ValidationError as exc:
        _fail(exc)
    if annotations is not None:
        records = _load_json(annotations)
    else:
        content = unit.get("unit") if isinstance(unit.get("unit"), dict) else unit
        records = content.get("annotations") or []
    maps = decode_annotations(records, doc.tokens, config.tokenizer)
    if maps.unresolved:
        err_console.print(f"[yellow]{len(maps.unresolved)} annotation(s) could not be placed[/yellow]")
    _emit([record.to_payload() for record in encode_annotations(maps, doc.tokens)])


@app.command()
def codebook(
    codebook_json: Path = typer.Argument(..., help="Codebook JSON file"),
    variable: Optional[str] = typer.Option(None, help="Variable to scope an annotate codebook to"),
    cfg: Optional[Path] = typer.Option(None, help="JSON config overrides"),
) -> None:
    """Print question options, or the variable map of an annotate codebook."""
    config = _config(cfg)
    data: Dict[str, Any] = _load_json(codebook_json)
    if data.get("type") == "annotate" or "variables" in data:
        full_map = build_full_variable_map(prepare_variables(data, config.codebook))
        if variable is None:
            _emit({name: var.to_payload() for name, var in full_map.items()})
            return
        scoped = build_variable_map(full_map, variable, data.get("restricted_codes"), config.codebook)
        _emit(
            {
                "variableType": scoped.variable_type,
                "editMode": scoped.edit_mode,
                "variableMap": {n: v.to_payload() for n, v in (scoped.variable_map or {}).items()},
                "showValues": {n: v.to_payload() for n, v in (scoped.show_values or {}).items()},
            }
        )
        return
    questions: List[Dict[str, Any]] = [q.to_payload() for q in prepare_questions(data, config.codebook)]
    _emit(questions)


if __name__ == "__main__":
    app()
