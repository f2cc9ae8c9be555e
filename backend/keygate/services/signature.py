"""
signature.py
EIP-191 personal_sign recovery.

Same digest that ``eth_account.messages.encode_defunct(text=...)`` produces,
but spelled out so the signature bytes can be validated before recovery:

    keccak256("\\x19Ethereum Signed Message:\\n" + len(message) + message)

The signature is ``r (32) || s (32) || v (1)``. Wallets emit ``v`` as 27/28,
hardware wallets and some libraries as 0/1; both are accepted.
"""
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError as KeyValidationError
from eth_utils import decode_hex, keccak

from keygate.core.errors import InvalidSignature, MalformedSignature

SIGNATURE_LENGTH = 65
PERSONAL_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n"

# secp256k1 group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def personal_message_hash(message: str) -> bytes:
    body = message.encode("utf-8")
    return keccak(PERSONAL_MESSAGE_PREFIX + str(len(body)).encode() + body)


def parse_signature(signature: str) -> tuple[int, int, int]:
    """Split a hex signature into (recovery_bit, r, s)."""
    try:
        raw = decode_hex(signature)
    except (ValueError, TypeError):
        raise MalformedSignature()
    if len(raw) != SIGNATURE_LENGTH:
        raise MalformedSignature(f"Invalid signature length: {len(raw)}, expected {SIGNATURE_LENGTH}")

    r = int.from_bytes(raw[0:32], "big")
    s = int.from_bytes(raw[32:64], "big")
    v = raw[64]
    recovery_bit = v - 27 if v >= 27 else v
    if recovery_bit not in (0, 1):
        raise MalformedSignature(f"Invalid recovery value: {v}")
    return recovery_bit, r, s


def recover_address(message: str, signature: str) -> str:
    recovery_bit, r, s = parse_signature(signature)

    # Low-s only (EIP-2); zero components can never come from a real key.
    if not (0 < r < SECP256K1_N) or not (0 < s <= SECP256K1_N // 2):
        raise InvalidSignature()

    try:
        sig = keys.Signature(vrs=(recovery_bit, r, s))
        public_key = sig.recover_public_key_from_msg_hash(personal_message_hash(message))
    except (BadSignature, KeyValidationError, ValueError):
        raise InvalidSignature()
    return public_key.to_checksum_address()


def addresses_match(a: str, b: str) -> bool:
    return a.lower() == b.lower()
