import pytest

from mindcare_core.domain.exceptions import ConfigurationError
from mindcare_core.domain.models import CrisisSeverity, IssueKind
from mindcare_core.safety import CrisisDetector, ResponseValidator, SafetyPatterns, load_safety_patterns
from mindcare_core.safety.resources import CRISIS_RESOURCES, crisis_fallback_message


@pytest.fixture(scope="module")
def detector():
    return CrisisDetector()


@pytest.fixture(scope="module")
def validator():
    return ResponseValidator()


@pytest.mark.parametrize(
    "text",
    [
        "I want to end it all",
        "I've been thinking about killing myself",
        "honestly everyone would be BETTER OFF WITHOUT ME",
        "I have suicidal thoughts",
    ],
)
def test_high_severity_crisis_text(detector, text):
    res = detector.assess(text)
    assert res.triggered
    assert res.matched_severity == CrisisSeverity.HIGH
    assert res.matched_patterns


def test_moderate_severity_and_curly_quotes(detector):
    res = detector.assess("I don’t want to live like this")
    assert res.triggered
    assert res.matched_severity == CrisisSeverity.MODERATE


def test_highest_severity_wins(detector):
    res = detector.assess("I can't go on, I want to die")
    assert res.matched_severity == CrisisSeverity.HIGH
    assert len(res.matched_patterns) == 2


@pytest.mark.parametrize("text", ["I'm stressed about my exams", "This homework is killing me", "", "   ", None])
def test_benign_text_does_not_trigger(detector, text):
    res = detector.assess(text)
    assert not res.triggered
    assert res.matched_severity == CrisisSeverity.NONE


def test_harmful_language_flagged(validator):
    res = validator.validate("you should just give up")
    assert not res.is_valid
    assert IssueKind.HARMFUL_LANGUAGE in res.issues


def test_medical_advice_flagged(validator):
    res = validator.validate("It sounds like you have depression, I understand.")
    assert IssueKind.MEDICAL_ADVICE in res.issues


def test_long_supportive_reply_is_only_too_long(validator):
    text = "I understand how this feels. " + "x" * 1600
    res = validator.validate(text)
    assert res.issues == frozenset({IssueKind.TOO_LONG})
    assert res.has_supportive_language
    assert res.length == len(text)


def test_long_reply_without_support_is_flagged(validator):
    text = "Exams are scheduled in the spring term. " * 4
    res = validator.validate(text)
    assert IssueKind.LACKS_SUPPORTIVE_LANGUAGE in res.issues
    assert IssueKind.TOO_LONG not in res.issues


def test_short_neutral_reply_is_valid(validator):
    res = validator.validate("Thanks for sharing that.")
    assert res.is_valid
    assert res.to_dict()["issues"] == []


def test_empty_reply(validator):
    res = validator.validate("   ")
    assert res.issues == frozenset({IssueKind.EMPTY_RESPONSE})
    assert not res.is_valid


def test_all_issues_reported_together(validator):
    text = "You should take medication and give up on school. " * 40
    res = validator.validate(text)
    assert {IssueKind.HARMFUL_LANGUAGE, IssueKind.MEDICAL_ADVICE, IssueKind.TOO_LONG} <= res.issues
    assert res.to_dict()["issues"] == sorted(i.value for i in res.issues)


def test_default_table_is_versioned():
    patterns = load_safety_patterns()
    assert patterns.version
    assert patterns.crisis and patterns.harmful and patterns.medical and patterns.supportive


def test_custom_table_from_file(tmp_path):
    path = tmp_path / "patterns.yaml"
    path.write_text(
        "version: test-1\ncrisis:\n  - pattern: 'red alert'\n    severity: moderate\nsupportive: ['calm']\n",
        encoding="utf-8",
    )
    detector = CrisisDetector(load_safety_patterns(path))
    assert detector.version == "test-1"
    assert detector.assess("RED ALERT now").triggered
    assert not detector.assess("I want to end it all").triggered


@pytest.mark.parametrize(
    "data",
    [
        ["not", "a", "mapping"],
        {"crisis": [{"severity": "high"}]},
        {"crisis": [{"pattern": "(unclosed"}]},
        {"crisis": [{"pattern": "x", "severity": "extreme"}]},
    ],
)
def test_invalid_tables_raise_configuration_error(data):
    with pytest.raises(ConfigurationError):
        SafetyPatterns.from_mapping(data)


def test_missing_file_raises_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError):
        load_safety_patterns(tmp_path / "missing.yaml")


def test_fallback_message_lists_every_resource():
    text = crisis_fallback_message()
    assert "988" in text and "741741" in text
    for resource in CRISIS_RESOURCES:
        assert resource.name in text
