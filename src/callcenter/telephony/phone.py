"""
Phone number canonicalization.

Numbers are stored and dispatched as digits only, country code included,
without a leading ``+``. No checksum or carrier validation is performed:
any number with enough digits is dispatched as-is.
"""

import re

MIN_PHONE_DIGITS = 10
NANP_COUNTRY_CODE = "1"

# ASCII only: str patterns would otherwise treat fullwidth and Arabic-Indic digits as digits.
_NON_DIGITS = re.compile(r"[^0-9]")


class PhoneNumberError(ValueError):
    """Raised when a raw phone number cannot be canonicalized."""

    INVALID_LENGTH = "InvalidLength"

    def __init__(self, raw: str, digits: str) -> None:
        super().__init__(
            f"Invalid phone number. Must be at least {MIN_PHONE_DIGITS} digits."
        )
        self.kind = self.INVALID_LENGTH
        self.raw = raw
        self.digits = digits


def normalize(raw: str) -> str:
    """Return the canonical digit string for ``raw``.

    >>> normalize("+1 (555) 123-4567")
    '15551234567'
    >>> normalize("5551234567")
    '15551234567'

    Raises:
        PhoneNumberError: fewer than 10 digits remain after stripping.
    """
    digits = _NON_DIGITS.sub("", raw or "")

    if len(digits) < MIN_PHONE_DIGITS:
        raise PhoneNumberError(raw, digits)

    # Bare 10-digit numbers are assumed to be North American.
    if len(digits) == MIN_PHONE_DIGITS:
        digits = NANP_COUNTRY_CODE + digits

    return digits.lstrip("+")


def to_e164(canonical: str) -> str:
    """Render a canonical digit string in ``+E.164`` form for carrier APIs."""
    return f"+{canonical}"
