from mixdrop_save.document import from_python
from mixdrop_save.registry import SchemaRegistry
from mixdrop_save.rules import register_builtin_rules
from mixdrop_save.validation import ValidationResult, Validator


def builtin_validator() -> Validator:
    registry = SchemaRegistry()
    register_builtin_rules(registry)
    return Validator(registry)


def level(level_id="l1", stars="2", seconds="30.5"):
    return {"levelId": level_id, "starsAchieved": stars, "bestTimeSeconds": seconds}


def test_valid_document_passes():
    doc = from_python({"version": "1.0.0", "levels": [level("a"), level("b")]})
    result = builtin_validator().validate(doc, "1.0.0")
    assert result.is_valid
    assert result.errors == []
    assert result.warnings == []


def test_missing_version_fails_required_fields():
    result = builtin_validator().validate(from_python({"levels": []}), None)
    assert not result.is_valid
    assert "Validation failed: Check that a version field exists" in result.errors


def test_alternate_version_keys_are_accepted():
    validator = builtin_validator()
    for key in ("dataVersion", "saveVersion"):
        assert validator.validate(from_python({key: "1.0.0"}), "1.0.0").is_valid


def test_duplicate_level_ids_fail_uniqueness():
    doc = from_python({"version": "1.0.0", "levels": [level("same"), level("same")]})
    result = builtin_validator().validate(doc, "1.0.0")
    assert not result.is_valid
    assert "Validation failed: Check that all level IDs are unique" in result.errors


def test_level_without_id_fails():
    doc = from_python({"version": "1.0.0", "levels": [{"starsAchieved": "1"}]})
    result = builtin_validator().validate(doc, "1.0.0")
    assert not result.is_valid
    assert len(result.errors) == 1


def test_out_of_range_stars_is_a_warning():
    doc = from_python({"version": "1.0.0", "levels": [level(stars="5")]})
    result = builtin_validator().validate(doc, "1.0.0")
    assert result.is_valid
    assert result.warnings == ["Validation failed: Check that numeric values are within expected ranges"]


def test_negative_or_unparsable_times_are_warnings():
    validator = builtin_validator()
    for seconds in ("-1", "fast", "nan", "inf"):
        doc = from_python({"version": "1.0.0", "levels": [level(seconds=seconds)]})
        result = validator.validate(doc, "1.0.0")
        assert result.is_valid
        assert len(result.warnings) == 1


def test_throwing_predicate_is_reported_with_rule_name():
    doc = from_python({"version": "1.0.0", "levels": "not-an-array"})
    result = builtin_validator().validate(doc, "1.0.0")
    assert not result.is_valid
    assert any(e.startswith("Validation error for rule 'LevelIds'") for e in result.errors)
    assert any(w.startswith("Validation error for rule 'NumericRanges'") for w in result.warnings)


def test_malformed_text_short_circuits():
    result = builtin_validator().validate('{"version":"1.0.0"', "1.0.0")
    assert not result.is_valid
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Invalid document format")


def test_text_input_is_parsed():
    assert builtin_validator().validate('{"version":"1.0.0"}', "1.0.0").is_valid


def test_version_scoped_rules_only_apply_to_their_version():
    registry = SchemaRegistry()
    registry.add_validation("OnlyV2", "v2 needs coins", True, lambda d: d.contains_key("coins"), "2.0.0")
    validator = Validator(registry)
    doc = from_python({"version": "1.0.0"})
    assert validator.validate(doc, "1.0.0").is_valid
    assert not validator.validate(doc, "2.0.0").is_valid


def test_predicates_cannot_mutate_the_document():
    registry = SchemaRegistry()

    def meddle(doc):
        doc.set("touched", "yes")
        return True

    registry.add_validation("Meddle", "mutates", True, meddle)
    doc = from_python({"version": "1.0.0"})
    Validator(registry).validate(doc, "1.0.0")
    assert not doc.contains_key("touched")


def test_merge_accumulates_and_ands_validity():
    first = ValidationResult()
    first.add_warning("w1")
    second = ValidationResult()
    second.add_error("e1")
    first.merge(second)
    assert not first.is_valid
    assert first.errors == ["e1"]
    assert first.warnings == ["w1"]
