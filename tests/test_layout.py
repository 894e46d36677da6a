"""Tests for the static template geometry and its helpers."""

import pytest

from printables.config.layout import (
    FLYER_BACK_TYPES,
    GENERATION_ORDER,
    TemplateType,
    bleed_points,
    build_qr_url,
    css_to_pdf_position,
    css_to_pdf_size,
    format_german_date,
    get_date_placement,
    get_default_placement,
    get_qr_placement,
    get_template_spec,
    hex_to_rgb,
    is_back_variant,
    is_mockup,
    mm_to_points,
    qr_caption,
    requires_logo,
    resolve_template_type,
    supports_qr_code,
)


class TestPredicates:
    @pytest.mark.parametrize("template_type", list(TemplateType))
    def test_predicates_are_total(self, template_type):
        assert isinstance(is_back_variant(template_type), bool)
        assert isinstance(requires_logo(template_type), bool)
        assert isinstance(supports_qr_code(template_type), bool)
        assert isinstance(is_mockup(template_type), bool)
        assert get_template_spec(template_type).template_type is template_type

    def test_back_types_have_no_text_placement(self):
        for t in FLYER_BACK_TYPES:
            assert get_default_placement(t) is None
            assert get_date_placement(t) is None
            assert supports_qr_code(t)

    def test_front_types_have_school_name_placement(self):
        assert get_default_placement(TemplateType.FLYER1) is not None
        assert get_default_placement(TemplateType.MOCK_TSHIRT) is not None

    def test_logo_types(self):
        logo_types = [t for t in TemplateType if requires_logo(t)]
        assert logo_types == [TemplateType.MINICARD, TemplateType.CD_JACKET]

    def test_button_has_no_qr(self):
        assert not supports_qr_code(TemplateType.BUTTON)
        assert get_qr_placement(TemplateType.BUTTON) is None


class TestGenerationOrder:
    def test_covers_every_type_once(self):
        assert len(GENERATION_ORDER) == len(TemplateType)
        assert set(GENERATION_ORDER) == set(TemplateType)

    def test_grouping(self):
        assert GENERATION_ORDER[:3] == [TemplateType.FLYER1, TemplateType.FLYER2, TemplateType.FLYER3]
        assert GENERATION_ORDER[3:6] == list(FLYER_BACK_TYPES)
        assert GENERATION_ORDER[-2:] == [TemplateType.MOCK_TSHIRT, TemplateType.MOCK_HOODIE]


class TestKeys:
    def test_template_key(self):
        assert get_template_spec(TemplateType.BUTTON).template_key == "templates/button-template.pdf"

    def test_output_keys(self):
        assert get_template_spec(TemplateType.FLYER1).output_key("evt_1") == "events/evt_1/printables/flyers/flyer1.pdf"
        assert get_template_spec(TemplateType.MINICARD).output_key("evt_1") == "events/evt_1/printables/minicards/minicard.pdf"
        assert get_template_spec(TemplateType.MOCK_HOODIE).output_key("evt_1") == "events/evt_1/mockups/mock-hoodie.pdf"

    def test_skipped_key(self):
        key = get_template_spec(TemplateType.TSHIRT_PRINT).skipped_key("evt_1")
        assert key == "events/evt_1/printables/tshirt-print-skipped.json"

    def test_clothing_templates_are_optional(self):
        assert not get_template_spec(TemplateType.TSHIRT_PRINT).required
        assert not get_template_spec(TemplateType.HOODIE_PRINT).required
        assert get_template_spec(TemplateType.FLYER1).required


class TestUnits:
    def test_mm_to_points(self):
        assert mm_to_points(25.4) == pytest.approx(72.0)

    def test_bleed_points(self):
        assert bleed_points(3) == pytest.approx(8.5039, abs=1e-4)
        assert bleed_points(0) == 0


class TestGermanDate:
    def test_plain_date(self):
        assert format_german_date("2025-06-12") == "12. Juni 2025"

    def test_time_part_is_ignored(self):
        # Late evening UTC must not roll over to the next day
        assert format_german_date("2025-03-31T23:30:00Z") == "31. März 2025"

    def test_january(self):
        assert format_german_date("2026-01-01") == "1. Januar 2026"

    @pytest.mark.parametrize("value", ["", "12.06.2025", "2025-13-01", None])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            format_german_date(value)


class TestQr:
    def test_build_url(self):
        assert build_qr_url("minimusiker.app", 1234) == "https://minimusiker.app/e/1234"

    def test_caption_strips_scheme(self):
        assert qr_caption("https://minimusiker.app/e/1234") == "minimusiker.app/e/1234"
        assert qr_caption("minimusiker.app/e/1") == "minimusiker.app/e/1"


class TestEditorConversions:
    def test_resolve_editor_names(self):
        assert resolve_template_type("tshirt") is TemplateType.TSHIRT_PRINT
        assert resolve_template_type("hoodie") is TemplateType.HOODIE_PRINT
        assert resolve_template_type("flyer2-back") is TemplateType.FLYER2_BACK

    def test_resolve_unknown(self):
        with pytest.raises(ValueError):
            resolve_template_type("poster")

    def test_css_to_pdf_position_flips_origin(self):
        assert css_to_pdf_position(100, 50, 298, 2.0) == (50.0, 273.0)

    def test_css_to_pdf_size(self):
        assert css_to_pdf_size(200, 40, 2.0) == (100.0, 20.0)

    def test_hex_to_rgb(self):
        assert hex_to_rgb("#ff0000") == (1.0, 0.0, 0.0)
        assert hex_to_rgb("#fff") == (1.0, 1.0, 1.0)
        assert hex_to_rgb("not-a-color") == (0.0, 0.0, 0.0)
