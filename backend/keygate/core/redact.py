"""Helpers that keep identifiers out of logs and diagnostic responses."""


def short_address(address: str) -> str:
    if not address or len(address) < 10:
        return address or ""
    return f"{address[:10]}..."


def mask_email(email: str | None) -> str | None:
    if not email or "@" not in email:
        return email
    local, domain = email.split("@", 1)
    if len(local) <= 2:
        return f"{local[:1]}***@{domain}"
    return f"{local[:2]}***@{domain}"
