"""
Notification template engine with Jinja2 for in-app notification text.

Each notification kind has a title template and a message template. Templates
are kept in memory and rendered with strict undefined handling, so a missing
context variable fails loudly instead of producing a half-empty message.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from jinja2 import DictLoader, Environment, StrictUndefined, TemplateError

from ruzio.core.logging import get_logger
from ruzio.database.models.notification import NotificationKind

logger = get_logger(__name__)

NOTIFICATION_TEMPLATES: Dict[str, str] = {
    "new_order/title": "New order {{ display_number }}",
    "new_order/message": (
        "Order {{ display_number }} was placed with {{ item_count }} "
        "item{{ 's' if item_count != 1 else '' }} for {{ items_total | currency }}."
        "{% if customer_note %} Note: {{ customer_note }}{% endif %}"
    ),
    "order_update/title": "Order {{ display_number }} {{ status_label | lower }}",
    "order_update/message": (
        "Your order {{ display_number }} is now {{ status_label | lower }}."
    ),
    "order_ready/title": "Order {{ display_number }} is ready",
    "order_ready/message": (
        "Your order {{ display_number }} is ready and waiting for a delivery partner."
    ),
    "order_assigned/title": "Delivery partner assigned",
    "order_assigned/message": (
        "A delivery partner has been assigned to your order {{ display_number }}."
    ),
    "order_cancelled/title": "Order {{ display_number }} {{ status_label | lower }}",
    "order_cancelled/message": (
        "Order {{ display_number }} was {{ status_label | lower }}."
        "{% if rejection_reason %} Reason: {{ rejection_reason }}{% endif %}"
    ),
    "general/title": "{{ title }}",
    "general/message": "{{ message }}",
}


class TemplateRenderError(Exception):
    """Raised when a notification template cannot be rendered."""

    def __init__(self, message: str, template_name: Optional[str] = None):
        super().__init__(message)
        self.template_name = template_name


class TemplateEngine:
    """
    Renders notification titles and messages per notification kind.
    """

    def __init__(self, templates: Optional[Dict[str, str]] = None):
        """
        Initialize the template engine.

        Args:
            templates: Template sources keyed ``<kind>/title`` and
                ``<kind>/message``; defaults to the built-in set
        """
        self.env = Environment(
            loader=DictLoader(templates or NOTIFICATION_TEMPLATES),
            autoescape=False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["currency"] = self._format_currency

    def render(
        self, kind: NotificationKind, context: Dict[str, Any]
    ) -> tuple[str, str]:
        """
        Render the title and message of a notification.

        Args:
            kind: Notification kind
            context: Template variables

        Returns:
            Tuple of (title, message)

        Raises:
            TemplateRenderError: If a template is missing or fails to render
        """
        title = self._render(f"{kind.value}/title", context)
        message = self._render(f"{kind.value}/message", context)
        return title, message

    def _render(self, template_name: str, context: Dict[str, Any]) -> str:
        try:
            return self.env.get_template(template_name).render(**context).strip()
        except TemplateError as e:
            logger.error(
                "Notification template rendering failed",
                template_name=template_name,
                error=str(e),
            )
            raise TemplateRenderError(
                f"Failed to render template {template_name}: {e}",
                template_name=template_name,
            ) from e

    @staticmethod
    def _format_currency(value: Any) -> str:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
        return f"{amount:,.2f}"


_template_engine: Optional[TemplateEngine] = None


def get_template_engine() -> TemplateEngine:
    """Get or create the shared template engine."""
    global _template_engine

    if _template_engine is None:
        _template_engine = TemplateEngine()

    return _template_engine
