"""Signed QR payloads for concert tickets.

A ticket QR carries ``id``, ``name``, ``tier`` and a random ``nonce``, signed
with the server-held QR secret. The printed string is a compact HS256 JWS, so
a scanner can hand it back verbatim; the JSON object form (the four fields
plus ``signature``) is accepted as well.
"""

import hmac
import secrets
from typing import Any, Mapping

import jwt
from pydantic import BaseModel, ConfigDict, ValidationError

from ticketgate.core.errors import MalformedPayloadError

SIGNED_FIELDS = ("id", "name", "tier", "nonce")


class QRPayload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str
    tier: str
    nonce: str
    signature: str

    def signed_fields(self) -> dict[str, str]:
        return {field: getattr(self, field) for field in SIGNED_FIELDS}


class QRSignatureCodec:
    def __init__(self, secret: str, algorithm: str = "HS256"):
        if not secret:
            raise ValueError("QR signing secret must not be empty")
        self._secret = secret
        self._algorithm = algorithm

    def _signature_for(self, fields: Mapping[str, str]) -> str:
        # Fixed key order keeps the encoding, and so the signature, deterministic.
        ordered = {field: fields[field] for field in SIGNED_FIELDS}
        token = jwt.encode(ordered, self._secret, algorithm=self._algorithm)
        return token.rsplit(".", 1)[1]

    def mint(self, ticket_id: str, name: str, tier: str, nonce: str | None = None) -> QRPayload:
        fields = {"id": ticket_id, "name": name, "tier": tier, "nonce": nonce or secrets.token_hex(8)}
        return QRPayload(**fields, signature=self._signature_for(fields))

    def sign(self, payload: QRPayload) -> str:
        """Encode a payload as its printable string, signing the non-signature fields."""
        return jwt.encode(payload.signed_fields(), self._secret, algorithm=self._algorithm)

    def parse(self, signed: str) -> QRPayload:
        """Decode a printed string without judging its authenticity.

        Raises:
            MalformedPayloadError: the string is not a structurally valid payload.
        """
        if not isinstance(signed, str) or signed.count(".") != 2:
            raise MalformedPayloadError("QR data is not a signed token")
        try:
            claims = jwt.decode(signed, options={"verify_signature": False})
        except jwt.PyJWTError as exc:
            raise MalformedPayloadError("QR data could not be decoded") from exc
        return self.from_mapping({**claims, "signature": signed.rsplit(".", 1)[1]})

    def from_mapping(self, data: Any) -> QRPayload:
        """Validate the object form of a payload (fields plus ``signature``)."""
        if not isinstance(data, Mapping):
            raise MalformedPayloadError("QR data must be an object")
        try:
            return QRPayload.model_validate(dict(data))
        except ValidationError as exc:
            raise MalformedPayloadError("QR payload has missing or unexpected fields") from exc

    def load(self, qr_data: Any) -> QRPayload:
        """Accept either the printed string or the object form."""
        if isinstance(qr_data, str):
            return self.parse(qr_data)
        return self.from_mapping(qr_data)

    def verify(self, payload: QRPayload) -> bool:
        expected = self._signature_for(payload.signed_fields())
        return hmac.compare_digest(expected.encode(), payload.signature.encode())
