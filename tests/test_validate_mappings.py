from pathlib import Path

import pytest

import bookstore
from popcorn_expander.core.config.load_mappings import load_mapping_file
from popcorn_expander.core.config.validate_mappings import resolve_import, validate_mapping_config
from popcorn_expander.core.errors import MappingValidationError
from popcorn_expander.core.expand.expander import Expander

DATA = Path(__file__).parent / "data"


def test_validate_builds_registry():
    registry, errors = validate_mapping_config(load_mapping_file(str(DATA / "bookstore-mappings.yaml")))
    assert errors == []
    assert registry is not None
    assert not registry.frozen
    assert set(registry.mapped_types()) == {bookstore.Author, bookstore.Book}
    assert registry.collection_bindings() == {bookstore.Shelf: bookstore.Book}

    author = registry.definition_for(bookstore.Author)
    assert author is not None
    display = author.properties[3]
    assert display.key == "displayName"
    assert display.translator is bookstore.author_display
    assert author.properties[0].always_expand is True


def test_validated_registry_expands():
    registry, _ = validate_mapping_config(load_mapping_file(str(DATA / "bookstore-mappings.yaml")))
    assert registry is not None
    out = Expander(registry).expand(bookstore.make_author(), {"viewer": "admin"}, "[email,display]")
    assert out == {
        "id": 1,
        "email": "ursula@example.org",
        "displayName": "Ursula <ursula@example.org>",
    }


def test_validate_collects_all_errors_sorted():
    registry, errors = validate_mapping_config(load_mapping_file(str(DATA / "invalid-mappings.yaml")))
    assert registry is None
    got = [(e.path, e.code) for e in errors]
    assert got == [
        ("collections[0].element", "E_UNKNOWN_ELEMENT_TYPE"),
        ("mappings[0].properties[1].translator", "E_IMPORT"),
        ("mappings[1].type", "E_IMPORT"),
        ("mappings[2].properties[1]", "E_DUPLICATE_PROPERTY"),
    ]
    assert all(e.file and e.file.endswith("invalid-mappings.yaml") for e in errors)


def test_validate_duplicate_type():
    config = {
        "mappings": [
            {"type": "bookstore:Book", "properties": ["id"]},
            {"type": "bookstore:Book", "properties": ["title"]},
        ]
    }
    registry, errors = validate_mapping_config(config)
    assert registry is None
    assert [(e.path, e.code) for e in errors] == [("mappings[1].type", "E_DUPLICATE_MAPPING")]


@pytest.mark.parametrize(
    "entry,path,code",
    [
        ({"properties": ["id"]}, "mappings[0].type", "E_REQUIRED_FIELD"),
        ({"type": "bookstore:make_author", "properties": ["id"]}, "mappings[0].type", "E_INVALID_TYPE"),
        ({"type": "bookstore:Book"}, "mappings[0].properties", "E_REQUIRED_FIELD"),
        ({"type": "bookstore:Book", "properties": [{"title": 1}]}, "mappings[0].properties[0]", "E_UNKNOWN_KEY"),
        ({"type": "bookstore:Book", "properties": [{"name": "id", "always_expand": "yes"}]}, "mappings[0].properties[0].always_expand", "E_INVALID_TYPE"),
        ({"type": "bookstore:Book", "properties": [{"name": "id", "translator": "bookstore:Shelf.__doc__"}]}, "mappings[0].properties[0].translator", "E_NOT_CALLABLE"),
        ({"type": "no_such_module_here:Thing", "properties": ["id"]}, "mappings[0].type", "E_IMPORT"),
        ("bookstore:Book", "mappings[0]", "E_INVALID_TYPE"),
    ],
)
def test_validate_entry_errors(entry, path, code):
    registry, errors = validate_mapping_config({"mappings": [entry]})
    assert registry is None
    assert (errors[0].path, errors[0].code) == (path, code)


def test_validate_empty_config_gives_empty_registry():
    registry, errors = validate_mapping_config({"mappings": None, "collections": None})
    assert errors == []
    assert registry is not None
    assert registry.mapped_types() == []


def test_resolve_import_dotted_attribute():
    assert resolve_import("bookstore:Shelf.__iter__") is bookstore.Shelf.__iter__
    with pytest.raises(MappingValidationError) as exc:
        resolve_import("bookstore.Book")
    assert exc.value.code == "E_INVALID_TYPE"


def test_validate_unknown_keys_of_mixed_types_are_collected():
    config = {"mappings": [{"type": "bookstore:Book", "properties": [{1: "a", "x": "b", "name": "id"}]}]}
    registry, errors = validate_mapping_config(config)
    assert registry is None
    assert [(e.path, e.code) for e in errors] == [("mappings[0].properties[0]", "E_UNKNOWN_KEY")]
    assert "1, x" in errors[0].message
