import pytest

from mixdrop_save.document import (
    DocumentArray,
    DocumentObject,
    from_python,
    get_data_version,
    parse,
    parse_object,
    serialize,
    split_top_level,
    stamp_version,
    to_document,
)
from mixdrop_save.errors import DocumentParseError


def sample_doc() -> DocumentObject:
    return from_python(
        {
            "version": "1.0.0",
            "levels": [
                {"levelId": "level1", "starsAchieved": "2", "bestTimeSeconds": "120.5"},
                {"levelId": "level2", "starsAchieved": "3", "bestTimeSeconds": "98"},
            ],
            "settings": {"music": "on", "tags": []},
        }
    )


def test_round_trip_preserves_tree():
    doc = sample_doc()
    text = serialize(doc)
    assert parse(text) == doc
    assert serialize(parse(text)) == text


def test_serialize_is_compact_and_quotes_leaves():
    doc = DocumentObject({"a": "1", "b": DocumentArray(["x", "y"])})
    assert serialize(doc) == '{"a":"1","b":["x","y"]}'


def test_parse_reads_bare_tokens_as_strings():
    doc = parse_object('{"levels":[{"id":"level1","stars":2,"bestTime":120.5,"done":true}]}')
    level = doc.get("levels").at(0)
    assert level.get("stars") == "2"
    assert level.get("bestTime") == "120.5"
    assert level.get("done") == "true"


def test_quoted_delimiters_do_not_split():
    doc = parse_object('{"name":"a, b: c","list":["x,y","[z]"]}')
    assert doc.get("name") == "a, b: c"
    assert doc.get("list").length() == 2
    assert doc.get("list").at(1) == "[z]"


def test_whitespace_between_tokens_is_ignored():
    doc = parse_object('{ "a" : "1" ,\n "b" : [ "2" , "3" ] }')
    assert doc.get("a") == "1"
    assert doc.get("b").at(1) == "3"


def test_empty_containers():
    doc = parse_object('{"a":{},"b":[]}')
    assert len(doc.get("a")) == 0
    assert doc.get("b").length() == 0


@pytest.mark.parametrize(
    "text",
    [
        "",
        "   ",
        '"just a string"',
        '{"a":"1"',
        '{"a":"1"}}',
        '{"a":"1",}',
        '{"a"}',
        '{"a":"unterminated}',
        "[1,,2]",
    ],
)
def test_malformed_text_raises(text):
    with pytest.raises(DocumentParseError):
        parse(text)


def test_parse_object_rejects_array_root():
    assert isinstance(parse('["a"]'), DocumentArray)
    with pytest.raises(DocumentParseError):
        parse_object('["a"]')


def test_split_top_level_respects_nesting():
    assert split_top_level('"a":{"b":"c"}', ":") == ['"a"', '{"b":"c"}']


def test_object_accessors():
    doc = DocumentObject()
    doc.set("k", "v")
    assert doc.contains_key("k")
    assert doc.get("missing") is None
    assert doc.remove("k") is True
    assert doc.remove("k") is False
    with pytest.raises(TypeError):
        doc.set("n", 5)


def test_array_at_out_of_range():
    arr = DocumentArray(["a"])
    assert arr.at(0) == "a"
    with pytest.raises(IndexError):
        arr.at(1)
    with pytest.raises(IndexError):
        arr.at(-1)


def test_copy_is_independent():
    doc = sample_doc()
    clone = doc.copy()
    clone.get("levels").at(0).set("levelId", "changed")
    assert doc.get("levels").at(0).get("levelId") == "level1"


def test_from_python_formats_scalars():
    value = from_python({"flag": True, "none": None, "n": 3, "f": 1.5})
    assert value.to_python() == {"flag": "true", "none": "null", "n": "3", "f": "1.5"}


def test_to_document_accepts_objects_with_to_dict():
    class Progress:
        def to_dict(self):
            return {"version": "1.0.0", "coins": 10}

    doc = to_document(Progress())
    assert doc.get("coins") == "10"
    with pytest.raises(TypeError):
        to_document(["not", "an", "object"])


def test_version_helpers():
    doc = DocumentObject({"saveVersion": "0.9.0"})
    assert get_data_version(doc) == "0.9.0"
    stamp_version(doc, "1.0.0")
    assert doc.get("saveVersion") == "1.0.0"
    assert not doc.contains_key("version")

    bare = DocumentObject()
    assert get_data_version(bare) is None
    stamp_version(bare, "1.0.0")
    assert bare.get("version") == "1.0.0"
