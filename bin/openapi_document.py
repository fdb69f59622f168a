#!/usr/bin/env python3
"""
Load, access and store OpenAPI documents.

Shared by the transform scripts in this directory. Documents are plain
JSON-like Python values; nothing here validates them against the OpenAPI
meta-schema.
"""

import json
import sys
from pathlib import Path
from typing import Any, Optional, Union

import yaml


Json = Union[dict[str, Any], list[Any], str, int, float, bool, None]

SCHEMA_REF_PREFIX = "#/components/schemas/"


def eprint(*args: object) -> None:
    print(*args, file=sys.stderr)


def load_document(path: Path) -> Json:
    """
    Parse a JSON or YAML document. The format is picked from the file suffix;
    anything that is not .yaml/.yml is parsed as JSON.
    """
    suffix = path.suffix.lower()
    with path.open("r", encoding="utf-8") as f:
        if suffix in (".yaml", ".yml"):
            return yaml.safe_load(f)
        return json.load(f)


def dump_document(doc: Json) -> str:
    return json.dumps(doc, indent=2, ensure_ascii=False) + "\n"


def write_document(path: Path, doc: Json) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_document(doc), encoding="utf-8")


def schema_ref(name: str) -> str:
    return f"{SCHEMA_REF_PREFIX}{name}"


def schema_ref_name(ref: str) -> Optional[str]:
    """
    Name of the schema a local reference points at, or None for anything
    that is not a "#/components/schemas/<name>" reference.
      "#/components/schemas/Foo"     -> "Foo"
      "other.json#/components/..."   -> None
      "#/components/responses/Foo"   -> None
    """
    if not isinstance(ref, str) or not ref.startswith(SCHEMA_REF_PREFIX):
        return None
    name = ref[len(SCHEMA_REF_PREFIX) :]
    return name or None


def get_schemas(doc: Json) -> Optional[dict[str, Any]]:
    """Return the components.schemas table, or None if the document has none."""
    if not isinstance(doc, dict):
        return None
    components = doc.get("components")
    if not isinstance(components, dict):
        return None
    schemas = components.get("schemas")
    if not isinstance(schemas, dict):
        return None
    return schemas
