"""Tests for the notification template engine."""

import pytest

from cleanwash.services.notifications.templates import (
    TemplateEngine,
    TemplateNotFoundError,
    TemplateValidationError,
)


@pytest.fixture
def engine() -> TemplateEngine:
    return TemplateEngine()


class TestOrderCompletedTemplate:
    def test_renders_subject_and_bodies(self, engine):
        rendered = engine.render_email(
            "order_completed",
            {"student_name": "Asha", "order_reference": "1a2b3c4d", "brand_name": "CleanWash"},
        )

        assert rendered["subject"] == "Your laundry order has been completed!"
        assert "Asha" in rendered["html_body"]
        assert "1a2b3c4d" in rendered["html_body"]
        assert "1a2b3c4d" in rendered["text_body"]

    def test_delivery_notes_are_optional(self, engine):
        with_notes = engine.render_email(
            "order_completed",
            {
                "student_name": "Asha",
                "order_reference": "1a2b3c4d",
                "delivery_notes": "Left at reception",
            },
        )
        without_notes = engine.render_email(
            "order_completed", {"student_name": "Asha", "order_reference": "1a2b3c4d"}
        )

        assert "Left at reception" in with_notes["text_body"]
        assert "Left at reception" not in without_notes["text_body"]

    def test_html_is_escaped(self, engine):
        rendered = engine.render_email(
            "order_completed",
            {"student_name": "<script>x</script>", "order_reference": "1a2b3c4d"},
        )

        assert "<script>" not in rendered["html_body"]
        assert "&lt;script&gt;" in rendered["html_body"]

    def test_missing_context_rejected(self, engine):
        with pytest.raises(TemplateValidationError):
            engine.render_email("order_completed", {"student_name": "Asha"})

    def test_unknown_template(self, engine):
        with pytest.raises(TemplateNotFoundError):
            engine.render_email("order_lost", {})
