"""
Persistence

This module reads and writes model documents: plain nested dicts/lists of
numbers and strings produced by ``to_document()`` on a booster or a
collection. The textual form is strict JSON, the binary form is the same
JSON gzip-compressed. Both carry the same document.

Loading never executes code: only data structures are reconstructed, and
each component rebuilds itself through its own ``from_dict``.

Non-finite floats (the NaN missing sentinel, the -inf threshold of a
missing/present split) have no JSON literal; they are written as
``{"_kind": "_float", "v": "NaN"}`` and restored on load.
"""

import gzip
import json
import logging
import math
import zlib
from typing import Any, Dict

import numpy as np

from .errors import BoosterIOError, DeserializeError, SerializeError

logger = logging.getLogger(__name__)

FORMAT_NAME = "mo_gbm"
FORMAT_VERSION = 1

_FLOAT_KIND = "_float"


def stamp(document: Dict[str, Any], kind: str) -> Dict[str, Any]:
    """Add the format header to a document."""
    return {"format": FORMAT_NAME, "format_version": FORMAT_VERSION, "kind": kind, **document}


def check_header(document: Any, kind: str) -> Dict[str, Any]:
    """
    Validate the format header of a loaded document.

    Raises:
    -------
    DeserializeError
        If the document is not a mapping, was written by something else, has
        an unsupported version, or holds a different kind of model.
    """
    if not isinstance(document, dict):
        raise DeserializeError(f"Expected a model document (dict), got {type(document).__name__}")
    if document.get("format") != FORMAT_NAME:
        raise DeserializeError(f"Not a {FORMAT_NAME} model document (format={document.get('format')!r})")
    version = document.get("format_version")
    if version != FORMAT_VERSION:
        raise DeserializeError(
            f"Unsupported format_version {version!r}; this version reads format_version {FORMAT_VERSION}"
        )
    if document.get("kind") != kind:
        raise DeserializeError(f"Expected a {kind!r} document, got {document.get('kind')!r}")
    return document


def _encode_floats(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _encode_floats(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode_floats(v) for v in value]
    if isinstance(value, (float, np.floating)) and not math.isfinite(value):
        return {"_kind": _FLOAT_KIND, "v": repr(float(value)).replace("nan", "NaN").replace("inf", "Infinity")}
    return value


def _decode_float(obj: Dict[str, Any]) -> Any:
    if len(obj) == 2 and obj.get("_kind") == _FLOAT_KIND and isinstance(obj.get("v"), str):
        return float(obj["v"])
    return obj


def dumps_document(document: Dict[str, Any]) -> str:
    try:
        return json.dumps(_encode_floats(document), allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SerializeError(f"Could not serialize model to JSON: {e}") from e


def loads_document(text: str) -> Any:
    try:
        return json.loads(text, object_hook=_decode_float)
    except (TypeError, ValueError) as e:
        raise DeserializeError(f"Could not parse model JSON: {e}") from e


def save_document(document: Dict[str, Any], path: str) -> None:
    data = gzip.compress(dumps_document(document).encode("utf-8"))
    try:
        with open(path, "wb") as f:
            f.write(data)
    except OSError as e:
        raise BoosterIOError(f"Could not write model to {path}: {e}") from e
    logger.debug(f"Saved {document.get('kind')} document to {path}")


def load_document(path: str) -> Any:
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise BoosterIOError(f"Could not read model from {path}: {e}") from e
    try:
        text = gzip.decompress(data).decode("utf-8")
    except (OSError, EOFError, zlib.error, UnicodeDecodeError) as e:
        raise DeserializeError(f"Could not decode model file {path}: {e}") from e
    return loads_document(text)
