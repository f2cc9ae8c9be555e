"""Error taxonomy for the wallet authentication flow.

Every rejection carries a stable, public ``message``. Nothing from the
underlying exception (stack, SQL, RPC payloads) is ever sent to the client.
"""
from fastapi import status


class WalletAuthError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"

    def __init__(self, message: str | None = None, detail: str | None = None):
        if message:
            self.message = message
        self.detail = detail
        super().__init__(self.message)

    def to_body(self) -> dict:
        body = {"error": self.message}
        if self.detail:
            body["detail"] = self.detail
        return body


# ── 400: client-caused, never retried ──

class ValidationError(WalletAuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"


class MalformedSignature(ValidationError):
    message = "Malformed signature"


# ── 401: client must restart the nonce flow ──

class AuthenticationError(WalletAuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Authentication failed"


class InvalidSignature(AuthenticationError):
    message = "Invalid signature"


class SignatureMismatch(AuthenticationError):
    message = "Signature does not match the provided address"


class NonceNotFound(AuthenticationError):
    message = "Nonce not found. Please request a new one."


class NonceAlreadyUsed(AuthenticationError):
    message = "Nonce has already been used. Please request a new one."


class NonceExpired(AuthenticationError):
    message = "Nonce expired. Please request a new one."


class MessageExpired(AuthenticationError):
    message = "Authentication message expired. Please try again."


# ── 403: valid signer, not entitled ──

class AuthorizationError(WalletAuthError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Not authorized"


class NotAuthorized(AuthorizationError):
    message = "This wallet is not authorized for admin access."

    def __init__(self):
        super().__init__(detail="Only wallets holding a Digital Key NFT can sign in as admin.")


# ── 500: storage / identity provider ──

class InfrastructureError(WalletAuthError):
    pass
