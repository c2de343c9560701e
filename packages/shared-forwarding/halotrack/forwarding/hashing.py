"""SHA-256 hashing of user data before it leaves the system.

Ad platforms match on hashes of normalized values, so normalization here must
follow their rules exactly.
"""

from __future__ import annotations

import hashlib
import re


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def hash_email(email: str | None) -> str | None:
    if not email or not email.strip():
        return None
    return sha256_hex(email.strip().lower())


def hash_phone(phone: str | None) -> str | None:
    digits = re.sub(r"\D", "", phone or "")
    return sha256_hex(digits) if digits else None


def hash_country(country: str | None) -> str | None:
    return sha256_hex(country.strip().lower()) if country and country.strip() else None


def hash_city(city: str | None) -> str | None:
    """Lower-case, whitespace removed."""
    if not city:
        return None
    normalized = re.sub(r"\s", "", city.lower())
    return sha256_hex(normalized) if normalized else None


def hash_name(name: str | None) -> str | None:
    return sha256_hex(name.strip().lower()) if name and name.strip() else None
