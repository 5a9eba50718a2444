"""
Credential signer.

Signs and verifies credentials and presentations with W3C Data Integrity
Proofs. The engine only talks to the ``CredentialSigner`` protocol; the
default ``EcdsaJcsSigner`` implements it locally.

Supported:
- Proof type: DataIntegrityProof
- Cryptosuite: ecdsa-jcs-2022
- Curve: P-256 (secp256r1)
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from vc_trust.documents import canonicalize_json
from vc_trust.errors import StorageError

logger = logging.getLogger(__name__)


class KeyResolutionError(Exception):
    """Raised when a verification method has no trusted public key."""


@dataclass
class PublicKeyJWK:
    """EC P-256 public key in JWK format."""

    kty: str
    crv: str
    x: str
    y: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PublicKeyJWK:
        """Create PublicKeyJWK from a JWK dictionary."""
        return cls(
            kty=data.get("kty", ""),
            crv=data.get("crv", ""),
            x=data.get("x", ""),
            y=data.get("y", ""),
        )

    @classmethod
    def from_public_key(cls, public_key: ec.EllipticCurvePublicKey) -> PublicKeyJWK:
        numbers = public_key.public_numbers()
        return cls(
            kty="EC",
            crv="P-256",
            x=_base64url_encode(numbers.x.to_bytes(32, byteorder="big")),
            y=_base64url_encode(numbers.y.to_bytes(32, byteorder="big")),
        )

    def to_dict(self) -> dict[str, str]:
        return {"kty": self.kty, "crv": self.crv, "x": self.x, "y": self.y}

    def is_valid_p256(self) -> bool:
        """Check if this is a valid P-256 EC key."""
        return self.kty == "EC" and self.crv == "P-256" and bool(self.x) and bool(self.y)


@dataclass
class ProofVerificationResult:
    """Result of cryptographic proof verification."""

    valid: bool
    cryptosuite: str
    verification_method: str
    error: str | None = None


class CredentialSigner(Protocol):
    """Signs and verifies credential-shaped JSON documents."""

    def sign(self, document: dict[str, Any], proof_purpose: str = "assertionMethod") -> dict[str, Any]:
        ...

    def verify(self, document: dict[str, Any]) -> ProofVerificationResult:
        ...


class EcdsaJcsSigner:
    """Local ``ecdsa-jcs-2022`` signer backed by a P-256 key.

    Verification accepts proofs made by this signer's own key and by any
    key registered with ``trust_key``.
    """

    SUPPORTED_CRYPTOSUITES = {"ecdsa-jcs-2022"}
    SUPPORTED_PROOF_TYPES = {"DataIntegrityProof"}

    def __init__(
        self,
        private_key: ec.EllipticCurvePrivateKey,
        issuer_did: str,
        key_id: str = "key-1",
    ) -> None:
        self.private_key = private_key
        self.issuer_did = issuer_did
        self.verification_method = f"{issuer_did}#{key_id}"
        self.public_key_jwk = PublicKeyJWK.from_public_key(private_key.public_key())
        self._trusted_keys: dict[str, PublicKeyJWK] = {
            self.verification_method: self.public_key_jwk,
        }

    @classmethod
    def generate(cls, issuer_did: str, key_id: str = "key-1") -> EcdsaJcsSigner:
        """Create a signer with a fresh in-memory key."""
        return cls(ec.generate_private_key(ec.SECP256R1()), issuer_did, key_id)

    @classmethod
    def from_key_file(cls, path: Path, issuer_did: str, key_id: str = "key-1") -> EcdsaJcsSigner:
        """Load the issuer key from a PEM file, creating it on first use."""
        try:
            if path.exists():
                private_key = serialization.load_pem_private_key(path.read_bytes(), password=None)
                if not isinstance(private_key, ec.EllipticCurvePrivateKey):
                    raise StorageError(f"Issuer key in {path} is not an EC private key")
            else:
                private_key = ec.generate_private_key(ec.SECP256R1())
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(
                    private_key.private_bytes(
                        encoding=serialization.Encoding.PEM,
                        format=serialization.PrivateFormat.PKCS8,
                        encryption_algorithm=serialization.NoEncryption(),
                    )
                )
                path.chmod(0o600)
                logger.info("Generated issuer signing key at %s", path)
        except OSError as e:
            logger.error("Failed to load issuer key from %s", path, exc_info=True)
            raise StorageError(f"Failed to load issuer key: {e}") from e

        return cls(private_key, issuer_did, key_id)

    def trust_key(self, verification_method: str, jwk: PublicKeyJWK | dict[str, Any]) -> None:
        """Accept proofs made by another verification method."""
        if isinstance(jwk, dict):
            jwk = PublicKeyJWK.from_dict(jwk)
        if not jwk.is_valid_p256():
            raise KeyResolutionError(f"Public key is not a valid P-256 EC key: {jwk}")
        self._trusted_keys[verification_method] = jwk

    def sign(self, document: dict[str, Any], proof_purpose: str = "assertionMethod") -> dict[str, Any]:
        """Attach a fresh Data Integrity proof to ``document``.

        Any existing proof is replaced.
        """
        unsigned = {k: v for k, v in document.items() if k != "proof"}
        message_bytes = canonicalize_json(unsigned).encode("utf-8")

        signature = self.private_key.sign(message_bytes, ec.ECDSA(hashes.SHA256()))

        signed = dict(unsigned)
        signed["proof"] = {
            "type": "DataIntegrityProof",
            "cryptosuite": "ecdsa-jcs-2022",
            "created": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "verificationMethod": self.verification_method,
            "proofPurpose": proof_purpose,
            "proofValue": _base64url_encode(signature),
        }
        return signed

    def verify(self, document: dict[str, Any]) -> ProofVerificationResult:
        """Verify the cryptographic proof of a credential or presentation.

        Args:
            document: The signed document.

        Returns:
            ProofVerificationResult with verification details.
        """
        proof = document.get("proof")
        if not isinstance(proof, dict):
            return ProofVerificationResult(
                valid=False,
                cryptosuite="unknown",
                verification_method="unknown",
                error="Missing proof",
            )

        proof_type = proof.get("type")
        if proof_type not in self.SUPPORTED_PROOF_TYPES:
            return ProofVerificationResult(
                valid=False,
                cryptosuite=proof.get("cryptosuite", "unknown"),
                verification_method=proof.get("verificationMethod", "unknown"),
                error=f"Unsupported proof type: {proof_type}",
            )

        cryptosuite = proof.get("cryptosuite")
        if cryptosuite not in self.SUPPORTED_CRYPTOSUITES:
            return ProofVerificationResult(
                valid=False,
                cryptosuite=cryptosuite or "unknown",
                verification_method=proof.get("verificationMethod", "unknown"),
                error=f"Unsupported cryptosuite: {cryptosuite}",
            )

        verification_method = proof.get("verificationMethod", "")
        if not verification_method:
            return ProofVerificationResult(
                valid=False,
                cryptosuite=cryptosuite,
                verification_method="",
                error="Missing verificationMethod in proof",
            )

        try:
            public_key = self._resolve_public_key(verification_method)
        except KeyResolutionError as e:
            return ProofVerificationResult(
                valid=False,
                cryptosuite=cryptosuite,
                verification_method=verification_method,
                error=f"Key resolution failed: {e}",
            )

        try:
            signature_valid = self._verify_signature(document, proof, public_key)
        except (ValueError, TypeError) as e:
            return ProofVerificationResult(
                valid=False,
                cryptosuite=cryptosuite,
                verification_method=verification_method,
                error=f"Signature verification error: {e}",
            )

        return ProofVerificationResult(
            valid=signature_valid,
            cryptosuite=cryptosuite,
            verification_method=verification_method,
            error=None if signature_valid else "Invalid signature",
        )

    def _resolve_public_key(self, verification_method: str) -> PublicKeyJWK:
        jwk = self._trusted_keys.get(verification_method)
        if jwk is None:
            raise KeyResolutionError(f"Verification method {verification_method} is not trusted")
        return jwk

    def _verify_signature(
        self,
        document: dict[str, Any],
        proof: dict[str, Any],
        public_key: PublicKeyJWK,
    ) -> bool:
        """Verify the ECDSA signature.

        Accepts DER-encoded signatures as well as raw r||s (64 bytes).
        """
        unsigned = {k: v for k, v in document.items() if k != "proof"}
        message_bytes = canonicalize_json(unsigned).encode("utf-8")

        signature_bytes = _base64url_decode(proof.get("proofValue", ""))
        ec_public_key = _jwk_to_ec_public_key(public_key)

        if len(signature_bytes) == 64:
            r = int.from_bytes(signature_bytes[:32], byteorder="big")
            s = int.from_bytes(signature_bytes[32:], byteorder="big")
            signature_bytes = encode_dss_signature(r, s)

        try:
            ec_public_key.verify(signature_bytes, message_bytes, ec.ECDSA(hashes.SHA256()))
        except InvalidSignature:
            return False
        return True


def _base64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def _base64url_decode(data: str) -> bytes:
    """Decode base64url without padding."""
    padding = 4 - (len(data) % 4)
    if padding != 4:
        data += "=" * padding
    return base64.urlsafe_b64decode(data)


def _jwk_to_ec_public_key(jwk: PublicKeyJWK) -> ec.EllipticCurvePublicKey:
    x = int.from_bytes(_base64url_decode(jwk.x), byteorder="big")
    y = int.from_bytes(_base64url_decode(jwk.y), byteorder="big")
    return ec.EllipticCurvePublicNumbers(x, y, ec.SECP256R1()).public_key()
