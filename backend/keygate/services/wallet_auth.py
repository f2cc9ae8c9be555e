"""
wallet_auth.py
Sequences one authentication attempt:

    nonce issued -> signature verified -> nonce consumed -> ownership checked
    -> identity resolved -> session issued

Any step may reject; the stage it happened at is logged with the reason.
The legacy flow swaps the server-held nonce for a +/- 5 minute timestamp
window and joins the same tail at the ownership check.
"""
import enum
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from keygate.config import settings
from keygate.core.errors import (
    AuthenticationError,
    InfrastructureError,
    MessageExpired,
    NotAuthorized,
    SignatureMismatch,
    WalletAuthError,
)
from keygate.core.redact import mask_email, short_address
from keygate.services.auth_message import parse_legacy_message, parse_nonce_message
from keygate.services.identity import find_active_mapping, resolve_email
from keygate.services.nonce_store import consume_nonce, validate_address, validate_purpose
from keygate.services.ownership import OwnershipOracle, OwnershipResult
from keygate.services.session_issuer import IssuedSession, SessionIssuer
from keygate.services.signature import addresses_match, recover_address

logger = logging.getLogger(__name__)


class AuthStage(str, enum.Enum):
    signature_verified = "signature_verified"
    nonce_consumed = "nonce_consumed"
    ownership_checked = "ownership_checked"
    identity_resolved = "identity_resolved"
    session_issued = "session_issued"


class WalletAuthenticator:
    def __init__(self, oracle: OwnershipOracle, issuer: SessionIssuer):
        self.oracle = oracle
        self.issuer = issuer

    @contextmanager
    def _stage(self, stage: AuthStage, address: str):
        try:
            yield
        except WalletAuthError as e:
            logger.warning(
                "wallet auth rejected: stage=%s wallet=%s reason=%s",
                stage.value, short_address(address), type(e).__name__,
            )
            raise

    def _verify_signer(self, message: str, signature: str, address: str):
        recovered = recover_address(message, signature)
        if not addresses_match(recovered, address):
            logger.warning(
                "address mismatch: claimed=%s recovered=%s",
                short_address(address), short_address(recovered),
            )
            raise SignatureMismatch()

    async def verify_with_nonce(
        self, db: AsyncSession, address: str, message: str, signature: str, purpose: str,
    ) -> tuple[IssuedSession, OwnershipResult]:
        addr = validate_address(address)
        validate_purpose(purpose)
        parsed = parse_nonce_message(message)

        with self._stage(AuthStage.signature_verified, addr):
            if parsed.wallet != addr:
                raise AuthenticationError("Message wallet does not match provided address")
            self._verify_signer(message, signature, addr)
        with self._stage(AuthStage.nonce_consumed, addr):
            await consume_nonce(db, addr, parsed.nonce, purpose)
        return await self._complete(db, addr)

    async def verify_legacy(
        self, db: AsyncSession, address: str, message: str, signature: str,
        now_ms: Optional[int] = None,
    ) -> tuple[IssuedSession, OwnershipResult]:
        addr = validate_address(address)
        parsed = parse_legacy_message(message)
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms

        with self._stage(AuthStage.signature_verified, addr):
            if abs(now_ms - parsed.timestamp_ms) > settings.LEGACY_MESSAGE_WINDOW_SECONDS * 1000:
                raise MessageExpired()
            self._verify_signer(message, signature, addr)
            if parsed.wallet != addr:
                raise AuthenticationError("Message wallet does not match provided address")
        logger.info("legacy timestamp flow used: wallet=%s", short_address(addr))
        return await self._complete(db, addr)

    async def _complete(self, db: AsyncSession, addr: str) -> tuple[IssuedSession, OwnershipResult]:
        with self._stage(AuthStage.ownership_checked, addr):
            ownership = await self.oracle.check(addr)
            logger.info(
                "NFT verification: wallet=%s owns=%s method=%s balance=%s",
                short_address(addr), ownership.owns_token, ownership.method,
                ownership.balance if ownership.balance is not None else "N/A",
            )
            if not ownership.owns_token:
                raise NotAuthorized()

        with self._stage(AuthStage.identity_resolved, addr):
            try:
                identity = await resolve_email(db, addr, self.issuer.wallet_email_domain)
            except SQLAlchemyError:
                logger.exception("identity lookup failed: wallet=%s", short_address(addr))
                raise InfrastructureError()

        with self._stage(AuthStage.session_issued, addr):
            session = await self.issuer.issue(db, addr, ownership, identity)
        return session, ownership

    async def nft_diagnostics(self, db: AsyncSession, address: str) -> dict:
        """Read-only view of every input to the admission decision."""
        addr = validate_address(address)
        ownership = await self.oracle.check(addr)
        try:
            mapping = await find_active_mapping(db, addr)
        except SQLAlchemyError:
            logger.exception("mapping lookup failed: wallet=%s", short_address(addr))
            raise InfrastructureError()
        return {
            "address": addr,
            "ownsNFT": ownership.owns_token,
            "balance": ownership.balance,
            "method": ownership.method,
            "contract": settings.NFT_CONTRACT_ADDRESS,
            "chainId": settings.CHAIN_ID,
            "isInAdminWhitelist": self.issuer.is_admin_eligible(addr),
            "hasDbMapping": mapping is not None,
            "mappedEmail": mask_email(mapping.email) if mapping else None,
            "checkedAt": datetime.now(timezone.utc).isoformat(),
        }
