"""Tests for recovering and validating the model's repair plan."""
import json

import pytest

from homefix.llm.model_output import (
    MalformedJson,
    ModelOutputError,
    NoJsonFound,
    SchemaViolation,
    clamp_probability,
    create_fallback_response,
    normalize_likelihood,
    parse_model_response,
    validate_model_output,
)

VALID_ANALYSIS = {
    "materials": [
        {
            "name": "100% Silicone Caulk",
            "spec": "bath/kitchen grade, white",
            "qty": "1 tube",
            "alt": ["Polyurethane caulk"],
        }
    ],
    "tools": [{"name": "Caulk gun", "purpose": "dispense evenly"}],
    "steps": ["Remove old caulk", "Clean and dry surface", "Apply new caulk"],
    "likelihood": {"toilet_caulk": 0.85},
    "safety": ["Ensure proper ventilation", "Wear gloves"],
}

MINIMAL = {
    "materials": [{"name": "Test material"}],
    "tools": [{"name": "Test tool"}],
    "steps": ["Test step"],
}


class TestValidateModelOutput:
    def test_valid_input_is_returned_unchanged(self):
        """
        WHY: Validation must not add, drop or rewrite anything in an already-valid plan.
        HOW: Validate a full plan and serialize it back.
        EXPECTED: Identical dict.
        """
        result = validate_model_output(VALID_ANALYSIS)
        assert result.to_dict() == VALID_ANALYSIS

    def test_optional_fields_may_be_absent(self):
        result = validate_model_output(MINIMAL)
        assert result.likelihood is None
        assert result.safety is None
        assert result.to_dict() == MINIMAL

    @pytest.mark.parametrize("missing", ["materials", "tools", "steps"])
    def test_missing_required_field(self, missing):
        """
        WHY: A plan without materials, tools or steps is useless to the client.
        HOW: Drop one required key.
        EXPECTED: SchemaViolation naming the property at the root.
        """
        candidate = {k: v for k, v in MINIMAL.items() if k != missing}
        with pytest.raises(SchemaViolation) as exc:
            validate_model_output(candidate)
        assert f"root: must have required property '{missing}'" in exc.value.violations
        assert str(exc.value).startswith("Model output validation failed")

    def test_material_without_name(self):
        candidate = {**MINIMAL, "materials": [{"spec": "some spec"}]}
        with pytest.raises(SchemaViolation) as exc:
            validate_model_output(candidate)
        assert "/materials/0: must have required property 'name'" in exc.value.violations

    def test_extra_top_level_key_rejected(self):
        """
        WHY: The schema is closed; unknown keys from the model must cause fallback, not be ignored.
        HOW: Add `foo: 1` to a valid plan.
        EXPECTED: SchemaViolation mentioning the additional property.
        """
        with pytest.raises(SchemaViolation) as exc:
            validate_model_output({**MINIMAL, "foo": 1})
        assert "root: must NOT have additional property 'foo'" in exc.value.violations

    def test_extra_key_inside_material_rejected(self):
        candidate = {**MINIMAL, "materials": [{"name": "Caulk", "brand": "Acme"}]}
        with pytest.raises(SchemaViolation) as exc:
            validate_model_output(candidate)
        assert "/materials/0: must NOT have additional property 'brand'" in exc.value.violations

    def test_wrong_types_reported_with_paths(self):
        candidate = {
            "materials": "caulk",
            "tools": [{"name": 5}],
            "steps": ["ok", 3],
        }
        with pytest.raises(SchemaViolation) as exc:
            validate_model_output(candidate)
        violations = exc.value.violations
        assert "/materials: must be array" in violations
        assert "/tools/0/name: must be string" in violations
        assert "/steps/1: must be string" in violations

    def test_non_object_root(self):
        with pytest.raises(SchemaViolation) as exc:
            validate_model_output(["not", "an", "object"])
        assert exc.value.violations == ["root: must be object"]

    def test_non_numeric_likelihood_rejected(self):
        with pytest.raises(SchemaViolation) as exc:
            validate_model_output({**MINIMAL, "likelihood": {"leak": "high"}})
        assert "/likelihood/leak: must be number" in exc.value.violations

    def test_video_requires_url_and_title(self):
        candidate = {**MINIMAL, "youtube_videos": [{"url": "https://www.youtube.com/watch?v=abc"}]}
        with pytest.raises(SchemaViolation) as exc:
            validate_model_output(candidate)
        assert "/youtube_videos/0: must have required property 'title'" in exc.value.violations

    def test_errors_are_value_errors(self):
        """Callers can catch the whole family with ModelOutputError (or ValueError)."""
        assert issubclass(SchemaViolation, ModelOutputError)
        assert issubclass(ModelOutputError, ValueError)


class TestLikelihoodNormalization:
    @pytest.mark.parametrize("raw, expected", [
        (0, 0.0),
        (0.35, 0.35),
        (1, 1.0),
        (1.5, 0.015),
        (85, 0.85),
        (100, 1.0),
        (150, 1.0),
        (-5, 0.0),
        (-0.2, 0.0),
    ])
    def test_clamp_table(self, raw, expected):
        assert clamp_probability(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw, expected", [
        (10 ** 400, 1.0),
        (-(10 ** 400), 0.0),
    ])
    def test_clamp_integers_beyond_float_range(self, raw, expected):
        assert clamp_probability(raw) == expected

    def test_huge_integer_likelihood_parses(self):
        """
        WHY: JSON allows integers of any size; the model reply must still parse to a plan.
        HOW: Parse a reply whose likelihood is 1 followed by 400 zeros.
        EXPECTED: Clamped to 1.0, no OverflowError.
        """
        text = '{"materials":[{"name":"m"}],"tools":[{"name":"t"}],"steps":["s"],"likelihood":{"x":1' + "0" * 400 + "}}"
        assert parse_model_response(text).likelihood == {"x": 1.0}

    def test_percentages_accepted_after_normalization(self):
        """
        WHY: Models often answer 0-100 instead of 0-1.
        HOW: Validate a plan with likelihood 150 and -5.
        EXPECTED: Stored as 1.0 and 0.0.
        """
        result = validate_model_output({**MINIMAL, "likelihood": {"a": 150, "b": -5, "c": 40}})
        assert result.likelihood == {"a": 1.0, "b": 0.0, "c": pytest.approx(0.4)}

    def test_normalization_is_idempotent(self):
        once = normalize_likelihood({**MINIMAL, "likelihood": {"a": 150, "b": 0.3, "c": -1}})
        twice = normalize_likelihood(once)
        assert once == twice

    def test_normalization_does_not_mutate_input(self):
        candidate = {**MINIMAL, "likelihood": {"a": 50}}
        normalize_likelihood(candidate)
        assert candidate["likelihood"] == {"a": 50}

    def test_booleans_and_strings_left_alone(self):
        normalized = normalize_likelihood({"likelihood": {"flag": True, "label": "high"}})
        assert normalized["likelihood"] == {"flag": True, "label": "high"}

    def test_boolean_likelihood_fails_validation(self):
        with pytest.raises(SchemaViolation):
            validate_model_output({**MINIMAL, "likelihood": {"flag": True}})

    def test_non_object_likelihood_left_for_validator(self):
        with pytest.raises(SchemaViolation) as exc:
            validate_model_output({**MINIMAL, "likelihood": [0.5]})
        assert "/likelihood: must be object" in exc.value.violations


class TestParseModelResponse:
    @pytest.mark.parametrize("wrap", [
        lambda s: s,
        lambda s: f"```json\n{s}\n```",
        lambda s: f"```\n{s}\n```",
        lambda s: f"  \n```JSON\n{s}\n```  \n",
    ])
    def test_bare_and_fenced_json(self, wrap):
        """
        WHY: The same object must come back however the model wraps it.
        HOW: Parse the JSON bare, in a ```json fence, and in a bare ``` fence.
        EXPECTED: The same plan every time.
        """
        result = parse_model_response(wrap(json.dumps(MINIMAL)))
        assert result.to_dict() == MINIMAL

    def test_json_surrounded_by_prose(self):
        text = "Here is my analysis:\n" + json.dumps(MINIMAL) + "\nLet me know if you need more."
        assert parse_model_response(text).to_dict() == MINIMAL

    def test_end_to_end_example(self):
        text = (
            'Here you go:\n```json\n{"materials":[{"name":"Caulk"}],"tools":[{"name":"Gun"}],'
            '"steps":["Apply"],"likelihood":{"leak":120}}\n```'
        )
        result = parse_model_response(text)
        assert result.to_dict() == {
            "materials": [{"name": "Caulk"}],
            "tools": [{"name": "Gun"}],
            "steps": ["Apply"],
            "likelihood": {"leak": 1.0},
        }

    def test_plain_refusal_raises_no_json_found(self):
        with pytest.raises(NoJsonFound):
            parse_model_response("I cannot help with that.")

    def test_invalid_json_raises_malformed(self):
        with pytest.raises(MalformedJson) as exc:
            parse_model_response("{ invalid json }")
        assert str(exc.value).startswith("Failed to parse JSON")

    def test_deeply_nested_json_is_malformed(self):
        """
        WHY: Every parse failure must surface as MalformedJson, whatever the decoder raised.
        HOW: Nest arrays far deeper than the decoder's recursion limit.
        EXPECTED: MalformedJson instead of RecursionError.
        """
        text = '{"materials":' + "[" * 100000 + "]" * 100000 + "}"
        with pytest.raises(MalformedJson):
            parse_model_response(text)

    def test_nan_is_not_json(self):
        with pytest.raises(MalformedJson):
            parse_model_response('{"materials": [], "tools": [], "steps": [], "likelihood": {"a": NaN}}')

    def test_valid_json_with_wrong_shape(self):
        with pytest.raises(SchemaViolation):
            parse_model_response(json.dumps({"invalid": "structure"}))


class TestFallbackResponse:
    def test_fallback_passes_validation_unchanged(self):
        """
        WHY: The fallback is the universal degradation path, so it must itself be valid.
        HOW: Round-trip the fallback through the validator.
        EXPECTED: No error and identical content.
        """
        fallback = create_fallback_response()
        assert validate_model_output(fallback.to_dict()).to_dict() == fallback.to_dict()

    def test_fallback_shape(self):
        fallback = create_fallback_response()
        assert len(fallback.materials) == 1
        assert len(fallback.tools) == 1
        assert len(fallback.steps) == 6
        assert fallback.likelihood == {"needs_more_information": 1.0}
        assert len(fallback.safety) == 5

    def test_fallback_is_a_fresh_object(self):
        first = create_fallback_response()
        first.materials[0].image_url = "https://example.com/x.jpg"
        assert create_fallback_response().materials[0].image_url is None
