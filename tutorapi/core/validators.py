"""
Input Validators - Sanitization and validation utilities.

This module provides:
- Chat message sanitization
- Referral code format checks
- Client IP extraction for fraud signals
"""
import re
from typing import Mapping, Optional, Tuple

from tutorapi.core.logging_config import get_logger

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 2000

# Referral codes are generated from this alphabet (no 0/O/1/I)
REFERRAL_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
_REFERRAL_CODE_REGEX = re.compile(r"^[A-Z0-9]{4,16}$")

_IPV4_REGEX = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$")


def sanitize_message(message: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """
    Sanitize a user message.

    - Removes null bytes
    - Strips leading/trailing whitespace
    - Normalizes runs of spaces and tabs (newlines are kept for math layout)
    - Limits length
    """
    if not message:
        return ""

    cleaned = message.replace("\x00", "").strip()
    cleaned = re.sub(r"[ \t]+", " ", cleaned)

    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length]

    return cleaned


def validate_message(message: str) -> Tuple[bool, str, Optional[str]]:
    """
    Full validation and sanitization of a chat message.

    Returns:
        Tuple of (is_valid, sanitized_message, error_message)
    """
    if not message or not message.strip():
        return False, "", "Message cannot be empty"

    if len(message.strip()) > MAX_MESSAGE_LENGTH:
        return False, "", f"Message too long (max {MAX_MESSAGE_LENGTH} characters)"

    sanitized = sanitize_message(message)
    if not sanitized:
        return False, "", "Message cannot be empty after sanitization"

    return True, sanitized, None


def normalize_referral_code(code: Optional[str]) -> Optional[str]:
    """Uppercase and strip a referral code; None when it cannot be a code."""
    if not code:
        return None
    normalized = code.strip().upper()
    if not _REFERRAL_CODE_REGEX.match(normalized):
        return None
    return normalized


def is_valid_ipv4(ip: str) -> bool:
    match = _IPV4_REGEX.match(ip)
    if not match:
        return False
    return all(0 <= int(octet) <= 255 for octet in match.groups())


def is_valid_ipv6(ip: str) -> bool:
    # Coarse check; enough to tell an address from "unknown" or garbage
    return ":" in ip and len(ip) <= 45


def extract_client_ip(headers: Mapping[str, str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Extract the original client IP from proxy headers.

    X-Forwarded-For may hold "client, proxy1, proxy2"; only the first entry
    is the client. Falls back to X-Real-IP.

    Returns:
        Tuple of (valid_ip_or_None, raw_value_or_None)
    """
    forwarded = headers.get("x-forwarded-for")
    first_forwarded = None
    if forwarded:
        parts = [p.strip() for p in forwarded.split(",") if p.strip()]
        first_forwarded = parts[0] if parts else None

    raw_ip = first_forwarded or headers.get("x-real-ip") or None

    if raw_ip and (is_valid_ipv4(raw_ip) or is_valid_ipv6(raw_ip)):
        return raw_ip, raw_ip

    if raw_ip:
        logger.debug(f"Discarding invalid client IP: {raw_ip[:45]}")
    return None, raw_ip
