"""Discriminated union rewriting and synthetic schema naming."""

from __future__ import annotations

from copy import deepcopy

import pytest

from transform_openapi import (
    SchemaCollector,
    SchemaNameCollisionError,
    transform_discriminated_schema,
)


def _tag(prop: str, value: str) -> dict:
    return {"type": "object", "properties": {prop: {"enum": [value]}}}


def _format_union() -> dict:
    return {
        "description": "Output format",
        "title": "Format",
        "nullable": True,
        "oneOf": [
            {"allOf": [{"$ref": "#/components/schemas/JsonFormat"}, _tag("type", "json")], "title": "Json"},
            {"type": "object", "title": "Raw", "properties": {"type": {"enum": ["raw"]}}},
            {"allOf": [{"$ref": "#/components/schemas/AvroFormat"}, _tag("type", "avro")]},
        ],
        "discriminator": {"propertyName": "type"},
    }


def _schemas() -> dict:
    return {
        "JsonFormat": {"type": "object", "properties": {"pretty": {"type": "boolean"}}},
        "AvroFormat": {"type": "object", "properties": {"schema_id": {"type": "integer"}}},
    }


def test_transform_builds_mapping_and_collects_variants() -> None:
    schemas = _schemas()
    collector = SchemaCollector(schemas)

    out = transform_discriminated_schema("Format", _format_union(), schemas, collector)

    assert out["discriminator"] == {
        "propertyName": "type",
        "mapping": {
            "json": "#/components/schemas/Format_Json",
            "raw": "#/components/schemas/Format_Raw",
            "avro": "#/components/schemas/Format_AvroFormat",
        },
    }
    assert sorted(collector.schemas) == ["Format_AvroFormat", "Format_Json", "Format_Raw"]
    assert collector.schemas["Format_Json"] == {
        "type": "object",
        "title": "Json",
        "properties": {"pretty": {"type": "boolean"}, "type": {"enum": ["json"]}},
    }


def test_transform_inlines_variants_in_input_order() -> None:
    schemas = _schemas()
    collector = SchemaCollector(schemas)

    out = transform_discriminated_schema("Format", _format_union(), schemas, collector)

    assert [v.get("title") for v in out["oneOf"]] == ["Json", "Raw", None]
    assert out["oneOf"][0] == collector.schemas["Format_Json"]
    assert out["oneOf"][0] is not collector.schemas["Format_Json"]
    assert all("$ref" not in v for v in out["oneOf"])


def test_transform_keeps_only_union_wrapper_keys() -> None:
    schemas = _schemas()

    out = transform_discriminated_schema("Format", _format_union(), schemas, SchemaCollector(schemas))

    assert set(out) == {"oneOf", "discriminator", "description"}
    assert out["description"] == "Output format"


def test_transform_inline_variant_is_copied_into_table_and_one_of() -> None:
    variant = {"type": "object", "title": "Foo", "properties": {"type": {"enum": ["foo"]}, "x": {"type": "integer"}}}
    union = {"oneOf": [variant], "discriminator": {"propertyName": "type"}}
    collector = SchemaCollector({})

    out = transform_discriminated_schema("Union", union, {}, collector)

    assert collector.schemas == {"Union_Foo": variant}
    assert collector.schemas["Union_Foo"] is not variant
    assert out["oneOf"] == [variant]
    assert out["discriminator"]["mapping"] == {"foo": "#/components/schemas/Union_Foo"}


def test_transform_omits_mapping_when_no_tags_found() -> None:
    union = {
        "oneOf": [{"type": "object", "title": "Untagged", "properties": {"x": {"type": "integer"}}}],
        "discriminator": {"propertyName": "type"},
    }
    collector = SchemaCollector({})

    out = transform_discriminated_schema("Union", union, {}, collector)

    assert out == {"oneOf": union["oneOf"], "discriminator": {"propertyName": "type"}}
    assert collector.schemas == {}


def test_transform_keeps_unresolved_composed_variant(capsys) -> None:
    broken = {"allOf": [{"$ref": "#/components/schemas/Gone"}, _tag("type", "gone")], "title": "Gone"}
    union = {"oneOf": [broken], "discriminator": {"propertyName": "type"}}
    collector = SchemaCollector({})

    out = transform_discriminated_schema("Union", union, {}, collector)

    assert out["oneOf"] == [broken]
    assert "mapping" not in out["discriminator"]
    assert collector.schemas == {}
    assert "Could not resolve ref" in capsys.readouterr().err


def test_transform_warns_on_unrecognized_variant(capsys) -> None:
    union = {"oneOf": [{"$ref": "#/components/schemas/Other"}], "discriminator": {"propertyName": "type"}}

    out = transform_discriminated_schema("Union", union, {}, SchemaCollector({}))

    assert out["oneOf"] == [{"$ref": "#/components/schemas/Other"}]
    assert "warning: Unrecognized variant #0 in 'Union'" in capsys.readouterr().err


def test_untitled_variant_keeps_existing_mapping_entry(capsys) -> None:
    flattened = {"type": "object", "properties": {"level": {"type": "integer"}, "codec": {"enum": ["gzip"]}}}
    schemas = {"Codec_GzipCodec": deepcopy(flattened)}
    union = {
        "oneOf": [flattened],
        "discriminator": {"propertyName": "codec", "mapping": {"gzip": "#/components/schemas/Codec_GzipCodec"}},
    }
    collector = SchemaCollector(schemas)

    out = transform_discriminated_schema("Codec", union, schemas, collector)

    assert out["discriminator"]["mapping"] == {"gzip": "#/components/schemas/Codec_GzipCodec"}
    assert out["oneOf"] == [flattened]
    assert collector.schemas == {}
    assert capsys.readouterr().err == ""


def test_untitled_variant_drops_mapping_when_target_differs(capsys) -> None:
    variant = {"type": "object", "properties": {"codec": {"enum": ["gzip"]}}}
    schemas = {"Codec_GzipCodec": {"type": "string"}}
    union = {
        "oneOf": [variant],
        "discriminator": {"propertyName": "codec", "mapping": {"gzip": "#/components/schemas/Codec_GzipCodec"}},
    }

    out = transform_discriminated_schema("Codec", union, schemas, SchemaCollector(schemas))

    assert out["discriminator"] == {"propertyName": "codec"}
    assert "warning: Unrecognized variant #0 in 'Codec'" in capsys.readouterr().err


def test_transform_drops_empty_description() -> None:
    union = {"description": "", "oneOf": [], "discriminator": {"propertyName": "type"}}

    out = transform_discriminated_schema("Union", union, {}, SchemaCollector({}))

    assert out == {"oneOf": [], "discriminator": {"propertyName": "type"}}


def test_transform_is_noop_without_one_of_or_discriminator() -> None:
    plain = {"type": "object", "properties": {"x": {"type": "integer"}}}
    untagged = {"oneOf": [{"type": "string"}, {"type": "integer"}]}

    assert transform_discriminated_schema("Plain", plain, {}, SchemaCollector({})) is plain
    assert transform_discriminated_schema("Untagged", untagged, {}, SchemaCollector({})) is untagged


def test_transform_leaves_union_without_property_name(capsys) -> None:
    union = {"oneOf": [{"type": "object", "title": "A"}], "discriminator": {}}

    assert transform_discriminated_schema("Union", union, {}, SchemaCollector({})) is union
    assert "without a propertyName" in capsys.readouterr().err


def test_collector_accepts_equal_schema_under_existing_name() -> None:
    existing = {"Union_Foo": {"type": "object", "title": "Foo"}}
    collector = SchemaCollector(existing)

    assert collector.add("Union_Foo", {"type": "object", "title": "Foo"}) == "Union_Foo"


def test_collector_raises_on_conflicting_schema_by_default() -> None:
    collector = SchemaCollector({"Union_Foo": {"type": "string"}})

    with pytest.raises(SchemaNameCollisionError, match="Union_Foo"):
        collector.add("Union_Foo", {"type": "object", "title": "Foo"})


def test_collector_rename_appends_first_free_suffix(capsys) -> None:
    collector = SchemaCollector({"Union_Foo": {"type": "string"}, "Union_Foo_2": {"type": "integer"}}, on_collision="rename")

    assert collector.add("Union_Foo", {"type": "object"}) == "Union_Foo_3"
    assert collector.schemas == {"Union_Foo_3": {"type": "object"}}
    assert "storing flattened variant as 'Union_Foo_3'" in capsys.readouterr().err


def test_collector_overwrite_keeps_last_write(capsys) -> None:
    collector = SchemaCollector({}, on_collision="overwrite")

    collector.add("Union_Foo", {"type": "string"})
    collector.add("Union_Foo", {"type": "integer"})

    assert collector.schemas == {"Union_Foo": {"type": "integer"}}
    assert "Overwriting schema 'Union_Foo'" in capsys.readouterr().err


def test_collision_between_variants_of_one_union_is_reported() -> None:
    union = {
        "oneOf": [
            {"type": "object", "title": "Same", "properties": {"type": {"enum": ["a"]}}},
            {"type": "object", "title": "Same", "properties": {"type": {"enum": ["b"]}}},
        ],
        "discriminator": {"propertyName": "type"},
    }

    with pytest.raises(SchemaNameCollisionError):
        transform_discriminated_schema("Union", union, {}, SchemaCollector({}))


def test_renamed_variant_is_what_the_mapping_points_at() -> None:
    union = {
        "oneOf": [
            {"type": "object", "title": "Same", "properties": {"type": {"enum": ["a"]}}},
            {"type": "object", "title": "Same", "properties": {"type": {"enum": ["b"]}}},
        ],
        "discriminator": {"propertyName": "type"},
    }
    collector = SchemaCollector({}, on_collision="rename")

    out = transform_discriminated_schema("Union", union, {}, collector)

    assert out["discriminator"]["mapping"] == {
        "a": "#/components/schemas/Union_Same",
        "b": "#/components/schemas/Union_Same_2",
    }
    assert sorted(collector.schemas) == ["Union_Same", "Union_Same_2"]
