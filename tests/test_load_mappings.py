from pathlib import Path

import pytest

from popcorn_expander.core.config.load_mappings import load_mapping_file
from popcorn_expander.core.errors import MappingLoadError

DATA = Path(__file__).parent / "data"


def test_load_yaml_success():
    config = load_mapping_file(str(DATA / "bookstore-mappings.yaml"))
    assert isinstance(config["mappings"], list)
    assert isinstance(config["collections"], list)
    assert config["__file__"].endswith("bookstore-mappings.yaml")


def test_load_json_success(tmp_path):
    p = tmp_path / "mappings.json"
    p.write_text('{"mappings": [{"type": "bookstore:Book", "properties": ["id"]}]}', encoding="utf-8")
    config = load_mapping_file(str(p))
    assert config["mappings"][0]["type"] == "bookstore:Book"
    assert config["collections"] is None


def test_load_missing_file():
    with pytest.raises(MappingLoadError) as exc:
        load_mapping_file(str(DATA / "does-not-exist.yaml"))
    assert exc.value.code == "E_FILE_NOT_FOUND"


def test_load_unsupported_format(tmp_path):
    p = tmp_path / "mappings.txt"
    p.write_text("hello", encoding="utf-8")
    with pytest.raises(MappingLoadError) as exc:
        load_mapping_file(str(p))
    assert exc.value.code == "E_UNSUPPORTED_FORMAT"


def test_load_bad_yaml(tmp_path):
    p = tmp_path / "mappings.yaml"
    p.write_text("mappings: [unclosed", encoding="utf-8")
    with pytest.raises(MappingLoadError) as exc:
        load_mapping_file(str(p))
    assert exc.value.code == "E_YAML_PARSE"


def test_load_bad_json(tmp_path):
    p = tmp_path / "mappings.json"
    p.write_text("{", encoding="utf-8")
    with pytest.raises(MappingLoadError) as exc:
        load_mapping_file(str(p))
    assert exc.value.code == "E_JSON_PARSE"


def test_load_rejects_non_mapping_top_level():
    with pytest.raises(MappingLoadError) as exc:
        load_mapping_file(str(DATA / "not-a-mapping.yaml"))
    assert exc.value.code == "E_INVALID_TOP_LEVEL"


def test_load_rejects_unknown_top_level_keys(tmp_path):
    p = tmp_path / "mappings.yaml"
    p.write_text("mappings: []\ntranslators: []\n", encoding="utf-8")
    with pytest.raises(MappingLoadError) as exc:
        load_mapping_file(str(p))
    assert exc.value.code == "E_UNKNOWN_TOP_LEVEL_KEY"
    assert "translators" in exc.value.message


def test_load_empty_file_is_empty_config(tmp_path):
    p = tmp_path / "mappings.yml"
    p.write_text("", encoding="utf-8")
    assert load_mapping_file(str(p)) == {"mappings": None, "collections": None, "__file__": str(p)}
