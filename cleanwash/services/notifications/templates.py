"""
Notification template engine with Jinja2 for email rendering.

Templates live in ``cleanwash/templates/notifications``. An email template
named ``<name>`` consists of ``<name>_subject.txt``, ``<name>.html`` and an
optional ``<name>.txt`` plain text body.
"""

from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import (
    Environment,
    FileSystemLoader,
    Template,
    TemplateError,
    TemplateNotFound,
    select_autoescape,
)

from cleanwash.core.exceptions import NotificationError
from cleanwash.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parents[2] / "templates" / "notifications"

# Context keys each template refuses to render without
REQUIRED_CONTEXT: Dict[str, tuple[str, ...]] = {
    "order_completed": ("student_name", "order_reference"),
}


class TemplateEngineError(NotificationError):
    """Base exception for template engine errors."""

    def __init__(self, message: str, template_name: Optional[str] = None):
        super().__init__(message, template_name=template_name)
        self.template_name = template_name


class TemplateNotFoundError(TemplateEngineError):
    """Raised when a template cannot be found."""

    pass


class TemplateRenderError(TemplateEngineError):
    """Raised when template rendering fails."""

    pass


class TemplateValidationError(TemplateEngineError):
    """Raised when the rendering context is incomplete."""

    pass


class TemplateEngine:
    """
    Template engine for rendering notification emails.

    HTML templates are autoescaped, so student-provided names cannot inject
    markup into outgoing mail.
    """

    def __init__(self, template_dir: Optional[str] = None, cache_size: int = 50):
        """
        Initialize the template engine.

        Args:
            template_dir: Directory containing template files, defaults to
                the packaged ``templates/notifications`` directory
            cache_size: Size of the compiled template cache
        """
        self.template_dir = Path(template_dir) if template_dir else DEFAULT_TEMPLATE_DIR

        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            cache_size=cache_size,
            trim_blocks=True,
            lstrip_blocks=True,
        )

        logger.debug("Template engine initialized", template_dir=str(self.template_dir))

    def render_email(self, template_name: str, context: Dict[str, Any]) -> Dict[str, str]:
        """
        Render an email template.

        Args:
            template_name: Template name without extension
            context: Variables to substitute

        Returns:
            Dictionary containing 'subject', 'html_body' and, when a plain
            text template exists, 'text_body'

        Raises:
            TemplateNotFoundError: If the template cannot be found
            TemplateRenderError: If rendering fails
            TemplateValidationError: If required context is missing
        """
        self._validate_context(context, template_name)

        try:
            subject = self._load_template(f"{template_name}_subject.txt").render(**context)
            html_body = self._load_template(f"{template_name}.html").render(**context)
            result = {"subject": subject.strip(), "html_body": html_body}

            try:
                text_template = self._load_template(f"{template_name}.txt")
            except TemplateNotFoundError:
                text_template = None
            if text_template is not None:
                result["text_body"] = text_template.render(**context)

        except TemplateError as e:
            logger.error(
                "Email template rendering failed",
                template_name=template_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TemplateRenderError(
                f"Failed to render email template: {e}",
                template_name=template_name,
            ) from e

        return result

    def _load_template(self, template_path: str) -> Template:
        try:
            return self.env.get_template(template_path)
        except TemplateNotFound as e:
            raise TemplateNotFoundError(
                f"Template not found: {template_path}",
                template_name=template_path,
            ) from e

    def _validate_context(self, context: Dict[str, Any], template_name: str) -> None:
        missing = [
            key
            for key in REQUIRED_CONTEXT.get(template_name, ())
            if context.get(key) in (None, "")
        ]
        if missing:
            raise TemplateValidationError(
                f"Missing template variables for {template_name}: {', '.join(missing)}",
                template_name=template_name,
            )


_template_engine: Optional[TemplateEngine] = None


def get_template_engine() -> TemplateEngine:
    """Get or create the shared template engine."""
    global _template_engine

    if _template_engine is None:
        _template_engine = TemplateEngine()

    return _template_engine
