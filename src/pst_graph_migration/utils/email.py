"""Address and recipient normalization utilities."""

from __future__ import annotations

from email.utils import parseaddr


def normalize_address(value: str | None) -> str | None:
    """Normalize a single email address for comparisons.

    Args:
        value: Raw address, optionally with a display name.

    Returns:
        The lowercased bare address, or None if missing/invalid.
    """
    if not value:
        return None
    _, addr = parseaddr(value.strip())
    addr = addr.strip().lower()
    if not addr or "@" not in addr:
        return None
    return addr


def split_recipients(value: str | None) -> list[dict[str, str]]:
    """Split a PST display recipient list into Graph ``emailAddress`` objects.

    PST display lists are ``;``-separated and often contain only display
    names. Entries without an address keep the display text as the address so
    the recipient is still visible on the imported message.

    Args:
        value: Raw ``DisplayTo``/``DisplayCc``/``DisplayBcc`` value.

    Returns:
        List of ``{"name": ..., "address": ...}`` dicts (``name`` optional).
    """
    if not value:
        return []

    recipients: list[dict[str, str]] = []
    for token in value.split(";"):
        token = token.strip()
        if not token:
            continue
        name, addr = parseaddr(token) if "@" in token else ("", "")
        addr = addr.strip()
        if "@" not in addr:
            recipients.append({"name": token, "address": token})
            continue
        entry: dict[str, str] = {"address": addr}
        if name.strip():
            entry["name"] = name.strip()
        recipients.append(entry)
    return recipients
