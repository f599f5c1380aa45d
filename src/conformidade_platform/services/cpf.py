"""CPF (Brazilian taxpayer id) normalisation and check-digit validation."""

import re

_NON_DIGITS = re.compile(r"\D")


def clean_cpf(cpf: str | None) -> str:
    """Strip everything but digits."""
    return _NON_DIGITS.sub("", cpf or "")


def _check_digit(digits: str, weight_start: int) -> int:
    total = sum(int(d) * w for d, w in zip(digits, range(weight_start, 1, -1)))
    remainder = (total * 10) % 11
    return 0 if remainder == 10 else remainder


def is_valid_cpf(cpf: str | None) -> bool:
    """Return True when ``cpf`` has 11 digits and both check digits match.

    Sequences of a single repeated digit (000.000.000-00, 111...) pass the
    mod-11 arithmetic but are not issued, so they are rejected.
    """
    digits = clean_cpf(cpf)
    if len(digits) != 11 or digits == digits[0] * 11:
        return False
    if _check_digit(digits[:9], 10) != int(digits[9]):
        return False
    return _check_digit(digits[:10], 11) == int(digits[10])


def format_cpf(cpf: str | None) -> str:
    """Render as 000.000.000-00; inputs that are not 11 digits come back unchanged."""
    digits = clean_cpf(cpf)
    if len(digits) != 11:
        return cpf or ""
    return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"
