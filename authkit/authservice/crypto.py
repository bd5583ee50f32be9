from __future__ import annotations
import base64, binascii, json, hmac, hashlib, time, uuid
from typing import Any, Dict, Optional
from .contracts import ClockPort, TokenSignerPort
from .errors import TokenExpired, TokenInvalid

def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")

def _unb64url(s: str) -> bytes:
    pad = '=' * (-len(s) % 4)
    return base64.urlsafe_b64decode(s + pad)

def _decode_segment(segment: str) -> Dict[str, Any]:
    try:
        value = json.loads(_unb64url(segment).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise TokenInvalid("Malformed token segment")
    if not isinstance(value, dict):
        raise TokenInvalid("Malformed token segment")
    return value

class SystemClock(ClockPort):
    def now_utc_ts(self) -> int:
        return int(time.time())

class HS256TokenSigner(TokenSignerPort):
    """
    HS256 compact JWT signer. Stateless: a token is valid until its exp
    passes or its signature no longer matches the secret.
    """
    ALG = "HS256"

    def __init__(self, secret: str, kid: Optional[str] = "primary", *, issuer: Optional[str] = None, clock: Optional[ClockPort] = None):
        if not secret:
            raise ValueError("HS256TokenSigner requires non-empty secret")
        self._secret = secret.encode("utf-8")
        self._kid = kid
        self._issuer = issuer
        self.clock = clock or SystemClock()

    def issue(self, claims: Dict[str, Any], ttl_seconds: int) -> str:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        now = self.clock.now_utc_ts()
        payload = dict(claims)
        payload.update({"iat": now, "exp": now + ttl_seconds, "jti": uuid.uuid4().hex})
        if self._issuer:
            payload.setdefault("iss", self._issuer)
        return self.sign(payload)

    def sign(self, claims: Dict[str, Any], *, headers: Optional[Dict[str, Any]] = None) -> str:
        base_headers = {"alg": self.ALG, "typ": "JWT"}
        if self._kid:
            base_headers["kid"] = self._kid
        if headers:
            base_headers.update(headers)
        header_b64 = _b64url(json.dumps(base_headers, separators=(",",":")).encode("utf-8"))
        payload_b64 = _b64url(json.dumps(claims, separators=(",",":")).encode("utf-8"))
        signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
        sig = hmac.new(self._secret, signing_input, hashlib.sha256).digest()
        return f"{header_b64}.{payload_b64}.{_b64url(sig)}"

    def verify(self, token: str) -> Dict[str, Any]:
        if not isinstance(token, str):
            raise TokenInvalid("Invalid token format")
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            raise TokenInvalid("Invalid token format")

        header = _decode_segment(header_b64)
        if header.get("alg") != self.ALG:
            raise TokenInvalid("Unsupported token algorithm")

        signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
        expected_sig = hmac.new(self._secret, signing_input, hashlib.sha256).digest()
        try:
            sig = _unb64url(sig_b64)
        except (binascii.Error, ValueError):
            raise TokenInvalid("Malformed signature")
        if not hmac.compare_digest(expected_sig, sig):
            raise TokenInvalid("Signature mismatch")

        payload = _decode_segment(payload_b64)
        exp = payload.get("exp")
        if not isinstance(exp, int) or isinstance(exp, bool):
            raise TokenInvalid("Missing expiration")
        if self.clock.now_utc_ts() > exp:
            raise TokenExpired("Token expired")
        return payload
