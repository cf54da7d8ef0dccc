"""Test category-placeholder redaction."""

import pytest

from phiguard.detection import Detector
from phiguard.privacy import Redactor, placeholder_for
from phiguard.privacy.redactor import FAIL_CLOSED_PLACEHOLDER, merge_spans
from phiguard.schemas.base import DetectionResult, SensitiveCategory, SpanMatch


C = SensitiveCategory


@pytest.fixture
def redactor():
    return Redactor()


class TestPlaceholderFor:
    """Test placeholder_for()."""

    def test_single_category(self):
        assert placeholder_for([C.INSURANCE]) == "[REDACTED_INSURANCE]"

    def test_label_is_upper_snake(self):
        assert placeholder_for([C.GENETIC_DISORDER]) == "[REDACTED_GENETIC_DISORDER]"

    def test_combined_in_declaration_order(self):
        """Test that combined labels do not depend on argument order."""
        expected = "[REDACTED_INSURANCE_AND_MEDICATION]"
        assert placeholder_for([C.MEDICATION, C.INSURANCE]) == expected
        assert placeholder_for([C.INSURANCE, C.MEDICATION]) == expected

    def test_duplicates_collapsed(self):
        assert placeholder_for([C.MEDICATION, C.MEDICATION]) == "[REDACTED_MEDICATION]"

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            placeholder_for([])

    def test_fail_closed_placeholder(self):
        assert FAIL_CLOSED_PLACEHOLDER == "[REDACTED_UNKNOWN_BINARY]"

    def test_placeholders_never_trigger_detector(self):
        """Test that no placeholder is itself sensitive content."""
        detector = Detector()
        for category in SensitiveCategory:
            assert not detector.detect(placeholder_for([category]))


class TestMergeSpans:
    """Test merging of overlapping spans."""

    def test_overlapping_spans_merged(self):
        regions = merge_spans(
            [SpanMatch(C.CONTACT_EMAIL, 0, 13), SpanMatch(C.POSTAL_ADDRESS, 6, 13)]
        )
        assert len(regions) == 1
        assert (regions[0].start, regions[0].end) == (0, 13)
        assert regions[0].categories == {C.CONTACT_EMAIL, C.POSTAL_ADDRESS}

    def test_chained_overlaps_become_one_region(self):
        regions = merge_spans(
            [
                SpanMatch(C.INSURANCE, 0, 5),
                SpanMatch(C.MEDICATION, 4, 9),
                SpanMatch(C.RESEARCH_DATA, 8, 12),
            ]
        )
        assert [(r.start, r.end) for r in regions] == [(0, 12)]

    def test_touching_spans_stay_separate(self):
        regions = merge_spans([SpanMatch(C.INSURANCE, 0, 5), SpanMatch(C.MEDICATION, 5, 9)])
        assert [(r.start, r.end) for r in regions] == [(0, 5), (5, 9)]


class TestRedactor:
    """Test Redactor.redact() and friends."""

    def test_reference_scenario(self, redactor, sample_phi_text):
        """Test the insurance / patient id / record number message."""
        sanitized = redactor.redact(sample_phi_text)

        assert sanitized == (
            "Contact [REDACTED_INSURANCE] provider for "
            "[REDACTED_GENERIC_IDENTIFIER_PHRASE] [REDACTED_IDENTIFIER_NUMERIC]"
        )
        assert "insurance" not in sanitized
        assert "patient id" not in sanitized
        assert "123456789" not in sanitized

    def test_clean_text_unchanged(self, redactor, sample_clean_text):
        assert redactor.redact(sample_clean_text) == sample_clean_text

    def test_every_occurrence_replaced(self, redactor):
        """Test that a category occurring twice is redacted twice."""
        text = "Insurance card and insurance number"
        assert redactor.redact(text) == "[REDACTED_INSURANCE] card and [REDACTED_INSURANCE] number"

    def test_structure_preserved(self, redactor):
        text = "Line one\n\tmedication: aspirin\nLine three  "
        assert redactor.redact(text) == "Line one\n\t[REDACTED_MEDICATION]: aspirin\nLine three  "

    def test_overlap_emits_combined_placeholder(self, redactor):
        """Test that overlapping categories are both named."""
        sanitized = redactor.redact("Send to email address please")
        assert sanitized == "Send to [REDACTED_CONTACT_EMAIL_AND_POSTAL_ADDRESS] please"

    def test_numeric_email_overlap(self, redactor):
        sanitized = redactor.redact("reach 123456789@example.com")
        assert sanitized == "reach [REDACTED_IDENTIFIER_NUMERIC_AND_CONTACT_EMAIL]"

    def test_identifier_next_to_phone_redacted(self, redactor):
        """Test that an identifier glued to a phone number is not left behind."""
        sanitized = redactor.redact("call 555-555-5555-123456789 now")
        assert sanitized == "call [REDACTED_CONTACT_PHONE]-[REDACTED_IDENTIFIER_NUMERIC] now"

    @pytest.mark.parametrize(
        "text",
        [
            "Contact insurance provider for patient id 123456789",
            "Send to email address please",
            "SSN 123-45-6789, phone 555-123-4567, family history of a genetic disorder",
            "medication medication medication",
            "call 555-555-5555-123456789 now",
        ],
    )
    def test_idempotent(self, redactor, text):
        """Test that redacting already-sanitized text changes nothing."""
        once = redactor.redact(text)
        assert redactor.redact(once) == once
        assert not Detector().detect(once)

    def test_uses_given_detection(self, redactor):
        """Test redacting with a precomputed result."""
        detection = DetectionResult(matches=(SpanMatch(C.MEDICATION, 0, 7),))
        assert redactor.redact("aspirin daily", detection) == "[REDACTED_MEDICATION] daily"

    def test_mismatched_detection_fails_closed(self, redactor):
        """Test that a result from another text never produces partial output."""
        detection = DetectionResult(matches=(SpanMatch(C.MEDICATION, 0, 50),))
        assert redactor.redact("short", detection) == FAIL_CLOSED_PLACEHOLDER

    def test_undecodable_bytes_fail_closed(self, redactor):
        assert redactor.redact(b"\xff\xfe") == FAIL_CLOSED_PLACEHOLDER

    def test_scan_returns_text_and_detection(self, redactor):
        sanitized, detection = redactor.scan("new medication")
        assert sanitized == "new [REDACTED_MEDICATION]"
        assert detection.categories == {C.MEDICATION}


class TestRedactValue:
    """Test recursive sanitization of detail payloads."""

    def test_clean_payload_unchanged(self, redactor):
        payload = {"method": "GET", "count": 3, "ok": True, "missing": None}
        sanitized, changed = redactor.redact_value(payload)

        assert sanitized == payload
        assert changed is False

    def test_nested_strings_redacted(self, redactor):
        payload = {"note": "call 555-123-4567", "tags": ["ok", "research data"]}
        sanitized, changed = redactor.redact_value(payload)

        assert changed is True
        assert sanitized == {
            "note": "call [REDACTED_CONTACT_PHONE]",
            "tags": ["ok", "[REDACTED_RESEARCH_DATA]"],
        }

    def test_keys_redacted(self, redactor):
        sanitized, changed = redactor.redact_value({"insurance": "x"})
        assert sanitized == {"[REDACTED_INSURANCE]": "x"}
        assert changed

    def test_numeric_identifier_redacted(self, redactor):
        """Test that an integer record number cannot slip through."""
        sanitized, changed = redactor.redact_value({"mrn": 123456789})
        assert sanitized == {"mrn": "[REDACTED_IDENTIFIER_NUMERIC]"}
        assert changed

    def test_small_numbers_kept(self, redactor):
        sanitized, changed = redactor.redact_value([1, 2.5, 42])
        assert sanitized == [1, 2.5, 42]
        assert not changed

    def test_other_objects_stringified(self, redactor):
        class Opaque:
            def __str__(self):
                return "medication list"

        sanitized, changed = redactor.redact_value({"obj": Opaque()})
        assert sanitized == {"obj": "[REDACTED_MEDICATION] list"}
        assert changed
