"""Summary: Reversible keyed encryption for stored OAuth tokens.

Importance: Keeps Gmail credentials unreadable at rest in SQLite.
Alternatives: Use a secrets manager or a cloud KMS.
"""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken


class TokenCipher:
    """Summary: Fernet wrapper keyed from the deployment's token secret.

    Importance: The core treats stored tokens as opaque; only this class reads them.
    Alternatives: Store tokens in plaintext and rely on filesystem permissions.
    """

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("A token secret is required to encrypt tokens")
        key = base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf-8")).digest())
        self._fernet = Fernet(key)

    def encrypt(self, plaintext: str) -> str:
        """Summary: Encrypt a token into a Fernet string."""

        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, payload: str) -> str:
        """Summary: Decrypt a stored token, rejecting tampered or foreign payloads.

        Importance: A wrong secret fails loudly instead of yielding garbage tokens.
        Alternatives: Skip the integrity check.
        """

        try:
            return self._fernet.decrypt(payload.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeEncodeError) as exc:
            raise ValueError("Token could not be decrypted") from exc
