import json
from pathlib import Path

from typer.testing import CliRunner

from popcorn_expander.cli import app

runner = CliRunner()
DATA = Path(__file__).parent / "data"


def test_cli_validate_success():
    r = runner.invoke(app, ["validate", str(DATA / "bookstore-mappings.yaml")])
    assert r.exit_code == 0, r.output
    assert "OK: 2 mappings, 1 collections" in r.stdout
    assert "Types: Author, Book" in r.stdout


def test_cli_validate_failure():
    r = runner.invoke(app, ["validate", str(DATA / "invalid-mappings.yaml")])
    assert r.exit_code == 2
    assert "E_UNKNOWN_ELEMENT_TYPE" in r.output
    assert "E_DUPLICATE_PROPERTY" in r.output


def test_cli_validate_missing_file():
    r = runner.invoke(app, ["validate", str(DATA / "nope.yaml")])
    assert r.exit_code == 1
    assert "E_FILE_NOT_FOUND" in r.output


def test_cli_validate_json_success():
    r = runner.invoke(app, ["validate", str(DATA / "bookstore-mappings.yaml"), "--format", "json"])
    assert r.exit_code == 0
    payload = json.loads(r.stdout)
    assert payload["command"] == "validate"
    assert payload["ok"] is True
    assert payload["errors"] == []
    assert payload["summary"] == {
        "mapping_count": 2,
        "collection_count": 1,
        "types": ["Author", "Book"],
    }


def test_cli_validate_json_failure_contains_codes():
    r = runner.invoke(app, ["validate", str(DATA / "invalid-mappings.yaml"), "--format", "json"])
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert payload["ok"] is False
    assert payload["error_count"] == 4
    codes = {e["code"] for e in payload["errors"]}
    assert "E_IMPORT" in codes


def test_cli_validate_unknown_format():
    r = runner.invoke(app, ["validate", str(DATA / "bookstore-mappings.yaml"), "--format", "xml"])
    assert r.exit_code == 2
    assert "E_VALIDATE_UNKNOWN_FORMAT" in r.output


def test_cli_mappings_lists_types():
    r = runner.invoke(app, ["mappings", str(DATA / "bookstore-mappings.yaml")])
    assert r.exit_code == 0, r.output
    assert "Mappings:" in r.stdout
    assert "- Author: id (always), name, email (translated), display as displayName (translated), books" in r.stdout
    assert "- Book: id (always), title, year, author, tags" in r.stdout
    assert "- Shelf of Book" in r.stdout
