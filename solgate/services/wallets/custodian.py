"""
Custodial deposit accounts: one fresh ed25519 keypair per session.

The stored secret is the 64-byte keypair (seed + public key), base58-encoded,
and wrapped in a Fernet token when a master key is configured.
"""
import logging
from dataclasses import dataclass

import base58
from cryptography.fernet import Fernet, InvalidToken
from solders.keypair import Keypair

from solgate.services.sessions.base import SessionRecord

logger = logging.getLogger(__name__)

KEYPAIR_LENGTH = 64
SEED_LENGTH = 32


class CustodialKeyError(Exception):
    """Stored secret cannot be turned back into the session's keypair."""


@dataclass(frozen=True)
class CustodialWallet:
    address: str
    secret: str

    def __repr__(self) -> str:
        return f"CustodialWallet(address={self.address!r})"


class WalletCustodian:
    """Stateless generator / loader of per-session signing keys."""

    def __init__(self, master_key: str | None = None):
        # Fernet() raises ValueError on a malformed key: fail at startup.
        self._cipher = Fernet(master_key.encode()) if master_key else None

    @property
    def encrypts_at_rest(self) -> bool:
        return self._cipher is not None

    def provision(self, session_id: str) -> CustodialWallet:
        keypair = Keypair()
        address = str(keypair.pubkey())
        logger.info("custodial_wallet_provisioned", extra={"session_id": session_id[:8], "address": address})
        return CustodialWallet(address=address, secret=self._seal(bytes(keypair)))

    def reconstruct(self, secret: str) -> Keypair:
        raw = self._unseal(secret)
        if len(raw) != KEYPAIR_LENGTH:
            raise CustodialKeyError(
                f"Unexpected key length {len(raw)}, expected {KEYPAIR_LENGTH} bytes"
            )
        keypair = Keypair.from_seed(raw[:SEED_LENGTH])
        if bytes(keypair.pubkey()) != raw[SEED_LENGTH:]:
            raise CustodialKeyError("Stored public key does not match the private seed")
        return keypair

    def reconstruct_for(self, session: SessionRecord) -> Keypair:
        keypair = self.reconstruct(session.custodial_secret)
        if str(keypair.pubkey()) != session.custodial_address:
            raise CustodialKeyError("Secret belongs to a different account than the session's")
        return keypair

    def _seal(self, raw: bytes) -> str:
        encoded = base58.b58encode(raw)
        if self._cipher is None:
            return encoded.decode("ascii")
        return self._cipher.encrypt(encoded).decode("ascii")

    def _unseal(self, secret: str) -> bytes:
        if not secret:
            raise CustodialKeyError("Empty custodial secret")
        encoded = secret.encode("ascii", errors="ignore")
        if self._cipher is not None:
            try:
                encoded = self._cipher.decrypt(encoded)
            except InvalidToken as e:
                raise CustodialKeyError("Custodial secret cannot be decrypted with the master key") from e
        try:
            return base58.b58decode(encoded)
        except ValueError as e:
            raise CustodialKeyError("Custodial secret is not valid base58") from e
