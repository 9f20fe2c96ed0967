from __future__ import annotations

import json

import pytest

from property_snapshot.utils import read_json, safe_number, write_json


def test_safe_number():
    assert safe_number("2") == 2
    assert safe_number("1,500.5") == 1500.5
    assert safe_number(" 7 ") == 7
    assert safe_number(3.5) == 3.5
    assert safe_number("250 m2") is None
    assert safe_number(True) is None
    assert safe_number(None) is None


def test_write_json_is_atomic_and_pretty(tmp_path):
    path = tmp_path / "nested" / "out.json"
    write_json(path, {"title": "Villa Café"})
    text = path.read_text(encoding="utf-8")
    assert text == '{\n  "title": "Villa Café"\n}\n'
    assert [p.name for p in path.parent.iterdir()] == ["out.json"]


def test_read_json_missing_and_malformed(tmp_path):
    assert read_json(tmp_path / "missing.json", []) == []
    bad = tmp_path / "bad.json"
    bad.write_text("[1,", encoding="utf-8")
    with pytest.raises(json.JSONDecodeError):
        read_json(bad)
