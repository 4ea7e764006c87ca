"""Core of the annotinder annotation client.

Expose tokenization, the annotation codec, codebook preparation and the
annotation manager for a unit via :class:`UnitSession`.
"""

__version__ = "0.1.0"

from .annotations import AnnotationMaps, decode_annotations, encode_annotations
from .codebook import (
    add_required_for,
    code_book_edges_to_map,
    get_code_tree_array,
    get_options,
    prepare_questions,
    prepare_variables,
    standardize_codes,
)
from .config import AnnotinderConfig
from .document import Doc, UnitSession, get_doc, prepare_grid
from .manager import AnnotationManager
from .shared.errors import AnnotationError, StaleUnitError, ValidationError
from .tokens import import_token_annotations, import_tokens, parse_tokens, tokens_column_to_row
from .variables import build_full_variable_map, build_variable_map, valid_relations

# Layering overview:
# - shared.*: records and exceptions used by every module
# - tokens / annotations: text -> tokens and wire records <-> token-indexed maps
# - codebook / variables: code trees, options and scoped variable maps
# - manager / document: editing state of the unit that is currently open

__all__ = [
    "__version__",
    "AnnotationError",
    "AnnotationManager",
    "AnnotationMaps",
    "AnnotinderConfig",
    "Doc",
    "StaleUnitError",
    "UnitSession",
    "ValidationError",
    "add_required_for",
    "build_full_variable_map",
    "build_variable_map",
    "code_book_edges_to_map",
    "decode_annotations",
    "encode_annotations",
    "get_code_tree_array",
    "get_doc",
    "get_options",
    "import_token_annotations",
    "import_tokens",
    "parse_tokens",
    "prepare_grid",
    "prepare_questions",
    "prepare_variables",
    "standardize_codes",
    "tokens_column_to_row",
    "valid_relations",
]
