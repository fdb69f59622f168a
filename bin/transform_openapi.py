#!/usr/bin/env python3
"""
Flatten discriminated unions in an OpenAPI document for documentation viewers.

Tagged enums (e.g. Rust enums with #[serde(tag = "type")] exported through
utoipa) produce union schemas like:

  "Format": {
    "oneOf": [
      {
        "allOf": [
          { "$ref": "#/components/schemas/JsonFormat" },
          { "type": "object", "properties": { "type": { "enum": ["json"] } } }
        ],
        "title": "Json"
      }
    ],
    "discriminator": { "propertyName": "type" }
  }

Many viewers render that allOf composition poorly. This script merges each
variant into a single inline object, registers it as a named schema
(`Format_Json`) so it shows up in the models list, and fills in the
discriminator mapping:

  "Format": {
    "oneOf": [ { "type": "object", "title": "Json", "properties": { ... } } ],
    "discriminator": {
      "propertyName": "type",
      "mapping": { "json": "#/components/schemas/Format_Json" }
    }
  }

It also collapses `{ "allOf": [{ "$ref": X }], "nullable": true }` wrappers
into `{ "$ref": X, "nullable": true }` everywhere in the document.

Usage:
  python bin/transform_openapi.py [input.json] [output.json]
  python bin/transform_openapi.py   # <repo>/api-spec.json -> <repo>/public/api-spec.json
"""

import argparse
import enum
import sys
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml

from openapi_document import (
    Json,
    eprint,
    get_schemas,
    load_document,
    schema_ref,
    schema_ref_name,
    write_document,
)
from transform_config import COLLISION_POLICIES, ConfigError, TransformConfig, resolve_config


class SchemaNameCollisionError(RuntimeError):
    pass


class VariantKind(enum.Enum):
    COMPOSED = "composed"
    INLINE = "inline"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class FlattenedVariant:
    schema: dict[str, Any]
    discriminator_value: Optional[str]
    ref_name: str


@dataclass(frozen=True)
class TransformResult:
    document: Json
    added: int
    transformed: list[str] = field(default_factory=list)


def resolve_schema_ref(schemas: dict[str, Any], ref: str) -> Optional[dict[str, Any]]:
    """
    Look up a local "#/components/schemas/<name>" reference. Returns None when
    the reference has another form or the schema does not exist. References
    are followed exactly one level.
    """
    name = schema_ref_name(ref)
    if name is None:
        return None
    target = schemas.get(name)
    if not isinstance(target, dict):
        return None
    return target


def merge_objects(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Overlay one schema fragment onto another, returning a new dict.

    `properties` mappings are unioned (overlay wins per property) and
    `required` lists are concatenated without duplicates. Every other key on
    the overlay replaces the base value outright.
    """
    result = deepcopy(base)
    for key, value in overlay.items():
        if key == "properties" and isinstance(result.get("properties"), dict) and isinstance(value, dict):
            merged = dict(result["properties"])
            merged.update(deepcopy(value))
            result["properties"] = merged
        elif key == "required" and isinstance(result.get("required"), list) and isinstance(value, list):
            result["required"] = list(dict.fromkeys([*result["required"], *value]))
        else:
            result[key] = deepcopy(value)
    return result


def _has_ref(item: Any) -> bool:
    return isinstance(item, dict) and isinstance(item.get("$ref"), str)


def classify_variant(variant: Json) -> VariantKind:
    if not isinstance(variant, dict):
        return VariantKind.UNRECOGNIZED

    all_of = variant.get("allOf")
    if isinstance(all_of, list):
        has_ref = any(_has_ref(item) for item in all_of)
        has_properties = any(isinstance(item, dict) and isinstance(item.get("properties"), dict) for item in all_of)
        return VariantKind.COMPOSED if has_ref and has_properties else VariantKind.UNRECOGNIZED

    title = variant.get("title")
    if "$ref" not in variant and isinstance(title, str) and title:
        return VariantKind.INLINE
    return VariantKind.UNRECOGNIZED


def discriminator_value(schema: Json, property_name: str) -> Optional[str]:
    """The tag value from `properties[property_name].enum`, if it has exactly one string."""
    if not isinstance(schema, dict):
        return None
    props = schema.get("properties")
    if not isinstance(props, dict):
        return None
    tag = props.get(property_name)
    if not isinstance(tag, dict):
        return None
    values = tag.get("enum")
    if isinstance(values, list) and len(values) == 1 and isinstance(values[0], str) and values[0]:
        return values[0]
    return None


def flatten_composed_variant(
    variant: dict[str, Any], schemas: dict[str, Any], property_name: str
) -> Optional[FlattenedVariant]:
    """
    Merge a composed variant's referenced schema with its inline fragments.
    Returns None (after a warning) when the reference cannot be resolved.
    """
    all_of = variant["allOf"]
    ref_item = next(item for item in all_of if _has_ref(item))
    inline_items = [item for item in all_of if isinstance(item, dict) and "$ref" not in item]

    ref_value = ref_item["$ref"]
    resolved = resolve_schema_ref(schemas, ref_value)
    if resolved is None:
        eprint(f"warning: Could not resolve ref: {ref_value}")
        return None

    flattened = deepcopy(resolved)
    for item in inline_items:
        flattened = merge_objects(flattened, item)

    title = variant.get("title")
    if title:
        flattened["title"] = title

    value: Optional[str] = None
    for item in inline_items:
        value = discriminator_value(item, property_name)
        if value is not None:
            break

    return FlattenedVariant(schema=flattened, discriminator_value=value, ref_name=schema_ref_name(ref_value) or "")


class SchemaCollector:
    """
    Accumulates synthetic variant schemas before they are merged into the
    schema table.

    A name is taken when the schema table or an earlier synthetic schema
    already holds a *different* schema under it. Equal content is accepted
    as-is so re-running on already transformed output changes nothing.
    """

    def __init__(self, existing: dict[str, Any], *, on_collision: str = "error") -> None:
        if on_collision not in COLLISION_POLICIES:
            raise ValueError(f"Unknown collision policy {on_collision!r}.")
        self.existing = existing
        self.on_collision = on_collision
        self.schemas: dict[str, Any] = {}

    def _is_taken(self, name: str, schema: dict[str, Any]) -> bool:
        for table in (self.schemas, self.existing):
            if name in table and table[name] != schema:
                return True
        return False

    def add(self, name: str, schema: dict[str, Any]) -> str:
        """Record `schema` and return the name it was stored under."""
        if not self._is_taken(name, schema):
            self.schemas[name] = schema
            return name

        if self.on_collision == "error":
            raise SchemaNameCollisionError(
                f"Synthetic schema {name!r} conflicts with a different schema of the same name. "
                f"Rename one of them or pass --on-collision rename."
            )
        if self.on_collision == "overwrite":
            eprint(f"warning: Overwriting schema {name!r} with a flattened variant of the same name.")
            self.schemas[name] = schema
            return name

        n = 2
        while self._is_taken(f"{name}_{n}", schema):
            n += 1
        renamed = f"{name}_{n}"
        eprint(f"warning: Schema name {name!r} is taken; storing flattened variant as {renamed!r}.")
        self.schemas[renamed] = schema
        return renamed


def _already_mapped_name(
    schema: dict[str, Any], value: str, variant: Json, schemas: dict[str, Any]
) -> Optional[str]:
    """
    Name the union's existing mapping gives `value`, provided the schema table
    holds exactly `variant` under it. This is how a variant flattened by an
    earlier run without a title keeps its mapping entry.
    """
    existing = schema["discriminator"].get("mapping")
    if not isinstance(existing, dict):
        return None
    name = schema_ref_name(existing.get(value))
    if name is None or schemas.get(name) != variant:
        return None
    return name


def is_discriminated_union(schema: Json) -> bool:
    return (
        isinstance(schema, dict)
        and isinstance(schema.get("oneOf"), list)
        and isinstance(schema.get("discriminator"), dict)
    )


def transform_discriminated_schema(
    schema_name: str,
    schema: Json,
    schemas: dict[str, Any],
    collector: SchemaCollector,
) -> Json:
    """
    Rewrite one discriminated union. Variants are inlined in their original
    order, each recognized variant is registered with `collector`, and the
    discriminator gets an explicit mapping. Only `oneOf`, `discriminator` and
    `description` survive on the union itself.
    """
    if not is_discriminated_union(schema):
        return schema

    property_name = schema["discriminator"].get("propertyName")
    if not isinstance(property_name, str) or not property_name:
        eprint(f"warning: Schema {schema_name!r} has a discriminator without a propertyName; leaving it unchanged.")
        return schema

    new_one_of: list[Json] = []
    mapping: dict[str, str] = {}

    for idx, variant in enumerate(schema["oneOf"]):
        kind = classify_variant(variant)

        if kind is VariantKind.COMPOSED:
            result = flatten_composed_variant(variant, schemas, property_name)
            if result is None:
                new_one_of.append(deepcopy(variant))
                continue
            variant_name = collector.add(f"{schema_name}_{variant.get('title') or result.ref_name}", result.schema)
            new_one_of.append(deepcopy(result.schema))
            if result.discriminator_value is not None:
                mapping[result.discriminator_value] = schema_ref(variant_name)

        elif kind is VariantKind.INLINE:
            value = discriminator_value(variant, property_name)
            if value is not None:
                variant_name = collector.add(f"{schema_name}_{variant['title']}", deepcopy(variant))
                mapping[value] = schema_ref(variant_name)
            new_one_of.append(deepcopy(variant))

        else:
            value = discriminator_value(variant, property_name)
            variant_name = _already_mapped_name(schema, value, variant, schemas) if value is not None else None
            if variant_name is not None:
                mapping[value] = schema_ref(variant_name)
            else:
                eprint(f"warning: Unrecognized variant #{idx} in {schema_name!r}; keeping it unchanged.")
            new_one_of.append(deepcopy(variant))

    discriminator: dict[str, Any] = {"propertyName": property_name}
    if mapping:
        discriminator["mapping"] = mapping

    transformed: dict[str, Any] = {"oneOf": new_one_of, "discriminator": discriminator}
    if schema.get("description"):
        transformed["description"] = schema["description"]
    return transformed


def simplify_allof_refs(node: Json) -> Json:
    """
    Replace `{"allOf": [{"$ref": X}], ...}` with `{"$ref": X, ...}` at every
    depth, keeping sibling keys such as `nullable` and `description`.
    Returns a new structure; the input is not modified.

    Children are simplified first so a wrapper that only becomes a single-$ref
    wrapper after its member is simplified is collapsed in the same pass.
    """
    if isinstance(node, list):
        return [simplify_allof_refs(v) for v in node]
    if not isinstance(node, dict):
        return node

    out = {k: simplify_allof_refs(v) for k, v in node.items()}
    all_of = out.get("allOf")
    if isinstance(all_of, list) and len(all_of) == 1 and _has_ref(all_of[0]):
        return {"$ref": all_of[0]["$ref"], **{k: v for k, v in out.items() if k != "allOf"}}
    return out


def transform_spec(spec: Json, *, on_collision: str = "error", quiet: bool = False) -> TransformResult:
    """
    Flatten every discriminated union in components.schemas, add the
    synthetic variant schemas, simplify allOf wrappers across the whole
    document and sort the schema table by name. `spec` is left untouched.
    """
    result = deepcopy(spec)
    schemas = get_schemas(result)
    if schemas is None:
        return TransformResult(document=simplify_allof_refs(result), added=0)

    original_count = len(schemas)
    collector = SchemaCollector(schemas, on_collision=on_collision)

    to_transform = [name for name, schema in schemas.items() if is_discriminated_union(schema)]
    for name in to_transform:
        if not quiet:
            print(f"Transforming schema: {name}")
        schemas[name] = transform_discriminated_schema(name, schemas[name], schemas, collector)

    schemas.update(collector.schemas)

    if not quiet:
        print("Simplifying allOf wrappers...")
    simplified = simplify_allof_refs(result)

    simplified_schemas = simplified["components"]["schemas"]
    simplified["components"]["schemas"] = {name: simplified_schemas[name] for name in sorted(simplified_schemas)}

    return TransformResult(
        document=simplified,
        added=len(simplified_schemas) - original_count,
        transformed=to_transform,
    )


def run(config: TransformConfig) -> int:
    input_path = config.input_path
    if not config.quiet:
        print(f"Reading: {input_path}")

    if not input_path.exists():
        eprint(f"error: input file not found: {input_path}")
        return 2

    try:
        spec = load_document(input_path)
    except (OSError, UnicodeDecodeError, ValueError, yaml.YAMLError) as e:
        eprint(f"error: failed to parse {input_path}: {e}")
        return 1
    if not isinstance(spec, dict):
        eprint(f"error: {input_path} must contain an object at the top level (got {type(spec).__name__}).")
        return 1

    if not config.quiet:
        print("Transforming OpenAPI spec...")
    try:
        result = transform_spec(spec, on_collision=config.on_collision, quiet=config.quiet)
    except SchemaNameCollisionError as e:
        eprint(f"error: {e}")
        return 1

    if not config.quiet:
        print(f"Writing: {config.output_path}")
    try:
        write_document(config.output_path, result.document)
    except OSError as e:
        eprint(f"error: failed to write {config.output_path}: {e}")
        return 1

    print(f"Done! Added {result.added} flattened variant schemas.")
    return 0


def _parse_args(argv: Optional[list[str]]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Flatten oneOf/allOf discriminated unions in an OpenAPI document for documentation viewers."
    )
    p.add_argument(
        "input",
        nargs="?",
        default=None,
        help="Path to the input OpenAPI JSON/YAML document (default: api-spec.json in the repository root).",
    )
    p.add_argument(
        "output",
        nargs="?",
        default=None,
        help="Where to write the transformed JSON document (default: public/api-spec.json in the repository root).",
    )
    p.add_argument(
        "--config",
        default=None,
        help="Optional YAML file providing input, output, on_collision and quiet. Arguments take precedence.",
    )
    p.add_argument(
        "--on-collision",
        choices=list(COLLISION_POLICIES),
        default=None,
        help=(
            "What to do when a flattened variant's name is already used by a different schema. "
            "'error' (default) aborts, 'rename' appends a numeric suffix, 'overwrite' keeps the last one."
        ),
    )
    p.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only print warnings, errors and the final summary.",
    )
    return p.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        config = resolve_config(
            config_path=args.config,
            input_path=args.input,
            output_path=args.output,
            on_collision=args.on_collision,
            quiet=args.quiet,
        )
    except ConfigError as e:
        eprint(f"error: {e}")
        return 2
    return run(config)


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
