"""
Signature-gated reveal of an opaque score.

The challenge text is a wire contract: a verifier that rebuilds it must get
byte-identical output, so labels and field order never change.

The signature gates the client-side decode behind explicit user consent. It
is not access control: without a ``verify_fn`` nothing checks the signature,
and integrations with a real verifier must verify server-side.
"""

import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional

from cryptography.exceptions import InvalidSignature as _CryptoInvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from util.logging import logger

from . import config
from .codec import Number, OpaqueCodec, default_codec
from .errors import InvalidSignature, UserRejected

SECONDS_PER_DAY = 86400

# Hex characters in a generated public identifier
PUBLIC_KEY_HEX_LENGTH = 2000


def generate_public_key() -> str:
    """Opaque public identifier for a reveal session."""
    return "0x" + secrets.token_hex(PUBLIC_KEY_HEX_LENGTH // 2)


@dataclass(frozen=True)
class SessionParams:
    public_key: str
    contract_address: str
    chain_id: int
    start_timestamp: int
    duration_days: int = 30

    @classmethod
    def start(cls, contract_address: str = None, chain_id: int = None,
              duration_days: int = None, now: float = None) -> 'SessionParams':
        """New session with a fresh public identifier and a window opening now."""
        return cls(
            public_key=generate_public_key(),
            contract_address=contract_address if contract_address is not None else config.CONTRACT_ADDRESS,
            chain_id=chain_id if chain_id is not None else config.CHAIN_ID,
            start_timestamp=int(now if now is not None else time.time()),
            duration_days=duration_days if duration_days is not None else config.REVEAL_DURATION_DAYS,
        )

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_days * SECONDS_PER_DAY


def build_challenge(params: SessionParams) -> str:
    """Deterministic challenge the wallet signs before a reveal."""
    return "\n".join([
        f"publickey:{params.public_key}",
        f"contractAddresses:{params.contract_address}",
        f"contractsChainId:{params.chain_id}",
        f"startTimestamp:{params.start_timestamp}",
        f"durationDays:{params.duration_days}",
    ])


def reveal(opaque_score: str, params: SessionParams, sign_fn: Callable[[str], object],
           verify_fn: Optional[Callable[[str, object], bool]] = None,
           codec: OpaqueCodec = None) -> Number:
    """Decode ``opaque_score`` once ``sign_fn`` has signed the session challenge.

    Any signing failure surfaces as UserRejected and nothing is decoded.
    """
    codec = codec or default_codec
    challenge = build_challenge(params)

    try:
        signature = sign_fn(challenge)
    except UserRejected:
        logger.log_reveal_attempt("rejected", {"reason": "user declined"})
        raise
    except Exception as e:
        logger.log_reveal_attempt("rejected", {"reason": str(e)[:100]})
        raise UserRejected(f"Signing failed: {e}") from e

    if not signature:
        logger.log_reveal_attempt("rejected", {"reason": "empty signature"})
        raise UserRejected("Signing returned no signature")

    if verify_fn is not None and not verify_fn(challenge, signature):
        logger.log_reveal_attempt("invalid_signature", {"public_key": params.public_key[:18]})
        raise InvalidSignature("Signature does not match the reveal challenge")

    value = codec.decode(opaque_score)
    logger.log_reveal_attempt("revealed", {"public_key": params.public_key[:18], "chain_id": params.chain_id})
    return value


class LocalSigner:
    """Ed25519 key pair standing in for a wallet in scripts and tests."""

    def __init__(self, private_key: Ed25519PrivateKey = None):
        self.private_key = private_key or Ed25519PrivateKey.generate()
        self.public_key = self.private_key.public_key()

    def public_key_bytes(self) -> bytes:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @property
    def address(self) -> str:
        """Wallet-style identifier derived from the public key."""
        return "0x" + self.public_key_bytes()[-20:].hex()

    def sign(self, message: str) -> str:
        return "ed25519:" + self.private_key.sign(message.encode("utf-8")).hex()

    def verify(self, message: str, signature: str) -> bool:
        return verify_ed25519(self.public_key_bytes(), message, signature)


def verify_ed25519(public_key_bytes: bytes, message: str, signature: str) -> bool:
    """Check an ``ed25519:<hex>`` signature over ``message``."""
    if not isinstance(signature, str) or not signature.startswith("ed25519:"):
        return False
    try:
        sig_bytes = bytes.fromhex(signature.split(":", 1)[1])
        Ed25519PublicKey.from_public_bytes(public_key_bytes).verify(sig_bytes, message.encode("utf-8"))
        return True
    except (ValueError, _CryptoInvalidSignature):
        return False
