"""
auth_message.py
Parsing of the human-readable message the wallet signs.

Nonce flow (current):

    Keygate Admin Authentication

    I am signing in to the admin portal.

    Wallet: 0x...
    Nonce: 3f1c...-...
    Issued At: 2026-01-01T00:00:00.000Z

Legacy flow carries ``Timestamp: <epoch millis>`` instead of Nonce/Issued At.
Only the labelled lines matter; the surrounding prose is free text.
"""
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from keygate.core.errors import ValidationError

WALLET_RE = re.compile(r"Wallet:\s*(0x[a-fA-F0-9]{40})")
NONCE_RE = re.compile(
    r"Nonce:\s*([0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})"
)
ISSUED_AT_RE = re.compile(r"Issued At:\s*(\S+)")
TIMESTAMP_RE = re.compile(r"Timestamp:\s*(\d{1,16})(?!\d)")

MESSAGE_TITLE = "Keygate Admin Authentication"
MESSAGE_STATEMENT = "I am signing in to the admin portal."


@dataclass
class NonceMessage:
    wallet: str
    nonce: str
    issued_at: Optional[str] = None


@dataclass
class LegacyMessage:
    wallet: str
    timestamp_ms: int


def parse_nonce_message(message: str) -> NonceMessage:
    wallet = WALLET_RE.search(message)
    nonce = NONCE_RE.search(message)
    if not wallet or not nonce:
        raise ValidationError("Invalid authentication message format")
    issued_at = ISSUED_AT_RE.search(message)
    return NonceMessage(
        wallet=wallet.group(1).lower(),
        nonce=nonce.group(1).lower(),
        issued_at=issued_at.group(1) if issued_at else None,
    )


def parse_legacy_message(message: str) -> LegacyMessage:
    wallet = WALLET_RE.search(message)
    timestamp = TIMESTAMP_RE.search(message)
    if not wallet or not timestamp:
        raise ValidationError("Invalid authentication message format")
    return LegacyMessage(wallet=wallet.group(1).lower(), timestamp_ms=int(timestamp.group(1)))


def build_nonce_message(address: str, nonce: str, issued_at: datetime) -> str:
    return "\n".join([
        MESSAGE_TITLE,
        "",
        MESSAGE_STATEMENT,
        "",
        f"Wallet: {address}",
        f"Nonce: {nonce}",
        f"Issued At: {issued_at.astimezone(timezone.utc).isoformat()}",
    ])


def build_legacy_message(address: str, timestamp_ms: int) -> str:
    return "\n".join([
        MESSAGE_TITLE,
        "",
        MESSAGE_STATEMENT,
        "",
        f"Wallet: {address}",
        f"Timestamp: {timestamp_ms}",
    ])
