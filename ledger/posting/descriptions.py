"""
Localized descriptions for synthetic entries.

Carry-over, remainder and interest entries are created by the engine, not
typed by the user, so their descriptions are generated here. The locale
comes from LEDGER_LOCALE ("en" or "th").

The user's description is cut short when needed so the rendered text
still fits DESCRIPTION_MAX_LENGTH.
"""

from decimal import Decimal

from ledger.models.entry import DESCRIPTION_MAX_LENGTH

MONTH_NAMES = {
    "en": [
        "", "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ],
    "th": [
        "", "มกราคม", "กุมภาพันธ์", "มีนาคม", "เมษายน",
        "พฤษภาคม", "มิถุนายน", "กรกฎาคม", "สิงหาคม",
        "กันยายน", "ตุลาคม", "พฤศจิกายน", "ธันวาคม",
    ],
}

TEMPLATES = {
    "en": {
        "carry_over": "Carried over from {month_name} {year}",
        "remainder": "outstanding balance: {description}",
        "interest": "interest: {description}",
        "paid_suffix": " (paid {paid})",
    },
    "th": {
        "carry_over": "ย้ายจาก {month_name} {year}",
        "remainder": "ยอดค้าง {description}",
        "interest": "ดอกเบี้ย {description}",
        "paid_suffix": " (จ่าย {paid})",
    },
}

DEFAULT_LOCALE = "en"


def format_amount(amount: Decimal) -> str:
    """Thousands-separated, without trailing zeros for whole amounts: 2,000 / 1,234.50"""
    if amount == amount.to_integral_value():
        return f"{int(amount):,}"
    return f"{amount:,.2f}"


def _fit(description: str, reserved: int) -> str:
    return description[:max(DESCRIPTION_MAX_LENGTH - reserved, 0)].rstrip()


class DescriptionFormatter:
    """Builds entry descriptions in one locale."""

    def __init__(self, locale: str = DEFAULT_LOCALE):
        if locale not in TEMPLATES:
            raise ValueError(f"Unsupported locale: {locale}")
        self.locale = locale
        self._templates = TEMPLATES[locale]

    def month_name(self, month: int) -> str:
        return MONTH_NAMES[self.locale][month]

    def carry_over(self, from_year: int, from_month: int) -> str:
        return self._templates["carry_over"].format(
            month_name=self.month_name(from_month),
            year=from_year,
        )

    def _wrap(self, key: str, description: str) -> str:
        template = self._templates[key]
        reserved = len(template.format(description=""))
        return template.format(description=_fit(description, reserved)).strip()

    def remainder(self, description: str) -> str:
        return self._wrap("remainder", description)

    def interest(self, description: str) -> str:
        return self._wrap("interest", description)

    def paid(self, description: str, paid_amount: Decimal) -> str:
        suffix = self._templates["paid_suffix"].format(paid=format_amount(paid_amount))
        return f"{_fit(description, len(suffix))}{suffix}".strip()
