"""Shared validation utilities"""

import re
from typing import Optional


def validate_br_mobile_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a Brazilian mobile number to E.164 format.

    Args:
        phone: Phone number string in various formats, e.g. "(34) 99876-5432"

    Returns:
        Normalized phone number in E.164 format (+55XXXXXXXXXXX)

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    # Remove all non-digit characters
    digits = re.sub(r"\D", "", phone)

    # Handle +55 prefix
    if digits.startswith("55") and len(digits) == 13:
        digits = digits[2:]

    # Area code (2 digits, no zero) + mobile indicator 9 + 8 digits
    if not re.fullmatch(r"[1-9]{2}9\d{8}", digits):
        raise ValueError("Phone number must be a Brazilian mobile number: (DD) 9XXXX-XXXX")

    return f"+55{digits}"


def validate_reason(reason: Optional[str], required: bool = False) -> Optional[str]:
    """Strip a free-text reason; blank reasons become None unless one is required"""
    if reason is not None:
        reason = reason.strip()
    if not reason:
        if required:
            raise ValueError("A reason is required")
        return None
    return reason
