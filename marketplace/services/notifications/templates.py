"""
Notification template engine with Jinja2 for email rendering.

Each email template is a trio of files in the template directory:
``<name>_subject.txt``, ``<name>.html`` and an optional ``<name>.txt``
plain text body.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
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

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parents[2] / "templates" / "notifications"


class TemplateEngineError(Exception):
    """Base exception for template engine errors."""

    def __init__(self, message: str, template_name: Optional[str] = None):
        super().__init__(message)
        self.template_name = template_name


class TemplateNotFoundError(TemplateEngineError):
    """Raised when a template cannot be found."""

    pass


class TemplateRenderError(TemplateEngineError):
    """Raised when template rendering fails."""

    pass


class TemplateEngine:
    """Renders notification emails from Jinja2 templates."""

    def __init__(
        self,
        template_dir: Optional[str] = None,
        enable_autoescape: bool = True,
    ):
        """
        Initialize the template engine.

        Args:
            template_dir: Directory containing template files. Defaults to
                the ``templates/notifications`` directory of the package.
            enable_autoescape: Enable autoescaping for HTML templates.
        """
        self.template_dir = Path(template_dir) if template_dir else DEFAULT_TEMPLATE_DIR

        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["html", "xml"]) if enable_autoescape else False,
            trim_blocks=True,
            lstrip_blocks=True,
        )

        self.env.filters["currency"] = self._format_currency
        self.env.filters["date"] = self._format_date

    def render_email(self, template_name: str, context: Dict[str, Any]) -> Dict[str, str]:
        """
        Render an email template.

        Args:
            template_name: Name of the template (without extension).
            context: Variables to substitute in the template.

        Returns:
            Dictionary containing 'subject', 'html_body', and optionally 'text_body'.

        Raises:
            TemplateNotFoundError: If the subject or HTML template is missing.
            TemplateRenderError: If rendering fails.
        """
        try:
            subject = self._load_template(f"{template_name}_subject.txt").render(**context)
            html_body = self._load_template(f"{template_name}.html").render(**context)

            text_body = None
            try:
                text_body = self._load_template(f"{template_name}.txt").render(**context)
            except TemplateNotFound:
                logger.debug(
                    "Text template not found, using HTML only",
                    extra={"template_name": template_name},
                )

            result = {"subject": subject.strip(), "html_body": html_body}
            if text_body:
                result["text_body"] = text_body

            return result

        except TemplateNotFound as e:
            logger.error(
                "Email template not found",
                extra={"template_name": template_name, "error": str(e)},
            )
            raise TemplateNotFoundError(
                f"Email template not found: {template_name}",
                template_name=template_name,
            ) from e
        except TemplateError as e:
            logger.error(
                "Email template rendering failed",
                extra={
                    "template_name": template_name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise TemplateRenderError(
                f"Failed to render email template: {str(e)}",
                template_name=template_name,
            ) from e

    def _load_template(self, template_path: str) -> Template:
        return self.env.get_template(template_path)

    @staticmethod
    def _format_currency(value: Any) -> str:
        """Format an amount with thousands separators and two decimals."""
        try:
            return f"{Decimal(str(value)):,.2f}"
        except (InvalidOperation, ValueError):
            return str(value)

    @staticmethod
    def _format_date(value: Any) -> str:
        if isinstance(value, datetime):
            return value.strftime("%B %d, %Y")
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            return dt.strftime("%B %d, %Y")
        except (ValueError, AttributeError):
            return str(value)
