# investo/email_system/templates.py
"""
Built-in templates for decision notifications.

Each template has a subject, a plain text body and an HTML body, formatted
with the notification payload through SafeDict.
"""
from decimal import Decimal
from typing import Dict, Tuple, Any


class _Placeholder:
    """Formats as {key} whatever the format spec."""

    def __init__(self, key: str):
        self.key = key

    def __format__(self, format_spec: str) -> str:
        return '{' + self.key + '}'


class _Value:
    """Applies numeric format specs to Decimals and numeric strings."""

    def __init__(self, value: Any):
        self.value = value

    def __format__(self, format_spec: str) -> str:
        if format_spec and format_spec[-1] in 'fFeEgGd%':
            try:
                number = Decimal(str(self.value if self.value is not None else 0))
            except ArithmeticError:
                return str(self.value)
            if format_spec.endswith('d'):
                return format(int(number), format_spec)
            return format(float(number), format_spec)
        return format('' if self.value is None else str(self.value), format_spec)


class SafeDict(dict):
    """
    Safe dictionary for template formatting.

    - Missing keys render as {key} instead of raising KeyError
    - Decimal values and numeric strings accept numeric format specs

    Examples:
        >>> "{amount:.2f}".format_map(SafeDict({'amount': '12.5'}))  # "12.50"
        >>> "{missing:.2f}".format_map(SafeDict({}))                # "{missing}"
    """

    def __missing__(self, key):
        return _Placeholder(key)

    def __getitem__(self, key):
        if key not in self:
            return self.__missing__(key)
        return _Value(super().__getitem__(key))


TEMPLATES: Dict[str, Dict[str, str]] = {
    "deposit_approved": {
        "subject": "Your deposit of {amount:.2f} {currency} was approved",
        "text": (
            "Hello {name},\n\n"
            "Your deposit of {amount:.2f} {currency} was approved and invested in "
            "the {planName} plan. The investment runs until {endDate}.\n"
        ),
        "html": (
            "<p>Hello {name},</p>"
            "<p>Your deposit of <b>{amount:.2f} {currency}</b> was approved and invested in "
            "the <b>{planName}</b> plan. The investment runs until {endDate}.</p>"
        ),
    },
    "deposit_rejected": {
        "subject": "Your deposit of {amount:.2f} {currency} was rejected",
        "text": (
            "Hello {name},\n\n"
            "Your deposit of {amount:.2f} {currency} was rejected.\n"
            "Reason: {reason}\n"
        ),
        "html": (
            "<p>Hello {name},</p>"
            "<p>Your deposit of <b>{amount:.2f} {currency}</b> was rejected.</p>"
            "<p>Reason: {reason}</p>"
        ),
    },
    "withdrawal_approved": {
        "subject": "Your withdrawal of {amount:.2f} {currency} was approved",
        "text": (
            "Hello {name},\n\n"
            "Your withdrawal of {amount:.2f} {currency} via {paymentMethod} was approved "
            "and is on its way.\n"
        ),
        "html": (
            "<p>Hello {name},</p>"
            "<p>Your withdrawal of <b>{amount:.2f} {currency}</b> via {paymentMethod} "
            "was approved and is on its way.</p>"
        ),
    },
    "withdrawal_rejected": {
        "subject": "Your withdrawal of {amount:.2f} {currency} was rejected",
        "text": (
            "Hello {name},\n\n"
            "Your withdrawal of {amount:.2f} {currency} was rejected. "
            "Your balance was not changed.\n"
            "Reason: {reason}\n"
        ),
        "html": (
            "<p>Hello {name},</p>"
            "<p>Your withdrawal of <b>{amount:.2f} {currency}</b> was rejected. "
            "Your balance was not changed.</p>"
            "<p>Reason: {reason}</p>"
        ),
    },
    "investment_completed": {
        "subject": "Your {planName} investment is complete",
        "text": (
            "Hello {name},\n\n"
            "Your investment of {amount:.2f} in {planName} has completed "
            "with a total profit of {profit:.2f}.\n"
        ),
        "html": (
            "<p>Hello {name},</p>"
            "<p>Your investment of <b>{amount:.2f}</b> in <b>{planName}</b> has completed "
            "with a total profit of <b>{profit:.2f}</b>.</p>"
        ),
    },
}


def render(template: str, variables: Dict[str, Any]) -> Tuple[str, str, str]:
    """
    Render a template.

    Returns:
        (subject, text_body, html_body)

    Raises:
        KeyError: Unknown template name
    """
    parts = TEMPLATES[template]
    values = SafeDict(variables or {})
    return (
        parts["subject"].format_map(values),
        parts["text"].format_map(values),
        parts["html"].format_map(values),
    )
