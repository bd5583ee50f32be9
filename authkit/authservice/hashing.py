from __future__ import annotations
import hashlib, hmac, os

ALGORITHM = "pbkdf2_sha256"
SALT_BYTES = 16


class PasswordHasher:
    """
    Salted PBKDF2-HMAC-SHA256 hasher.
    Encoded form: pbkdf2_sha256$<iterations>$<salt_hex>$<digest_hex>
    A fresh salt is drawn on every hash() call.
    """
    def __init__(self, iterations: int = 260_000):
        if iterations < 1:
            raise ValueError("iterations must be positive")
        self.iterations = iterations

    def hash(self, password: str) -> str:
        salt = os.urandom(SALT_BYTES).hex()
        dk = self._derive(password, salt, self.iterations)
        return f"{ALGORITHM}${self.iterations}${salt}${dk}"

    def verify(self, password: str, encoded: str) -> bool:
        try:
            algo, iters_s, salt, hex_dk = encoded.split("$")
            if algo != ALGORITHM:
                return False
            dk = self._derive(password, salt, int(iters_s))
        except (ValueError, TypeError, AttributeError):
            return False
        return hmac.compare_digest(dk, hex_dk)

    def needs_rehash(self, encoded: str) -> bool:
        try:
            algo, iters_s, _, _ = encoded.split("$")
            return algo != ALGORITHM or int(iters_s) != self.iterations
        except (ValueError, AttributeError):
            return True

    @staticmethod
    def _derive(password: str, salt: str, iterations: int) -> str:
        if iterations < 1:
            raise ValueError("iterations must be positive")
        return hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations, dklen=32).hex()
