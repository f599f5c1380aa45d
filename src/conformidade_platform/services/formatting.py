"""pt-BR display formatting for messages and e-mails.

Kept locale-free: the container images do not ship pt_BR locales.
"""

from datetime import date, datetime
from decimal import Decimal

_WEEKDAYS = [
    "segunda-feira",
    "terça-feira",
    "quarta-feira",
    "quinta-feira",
    "sexta-feira",
    "sábado",
    "domingo",
]

_MONTHS = [
    "janeiro",
    "fevereiro",
    "março",
    "abril",
    "maio",
    "junho",
    "julho",
    "agosto",
    "setembro",
    "outubro",
    "novembro",
    "dezembro",
]


def format_date_long(value: date) -> str:
    """``terça-feira, 10 de junho de 2025``"""
    return f"{_WEEKDAYS[value.weekday()]}, {value.day} de {_MONTHS[value.month - 1]} de {value.year}"


def format_date_br(value: date | datetime | None) -> str:
    if value is None:
        return ""
    return value.strftime("%d/%m/%Y")


def format_datetime_br(value: datetime) -> str:
    """``10/06/2025 às 14:30``"""
    return f"{value.strftime('%d/%m/%Y')} às {value.strftime('%H:%M')}"


def format_brl(value: Decimal | float | int | None) -> str:
    """``R$ 350.000,00``"""
    amount = Decimal(str(value or 0)).quantize(Decimal("0.01"))
    integer, _, cents = f"{abs(amount):,.2f}".partition(".")
    sign = "-" if amount < 0 else ""
    return f"{sign}R$ {integer.replace(',', '.')},{cents}"
