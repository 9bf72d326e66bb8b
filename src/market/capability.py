"""Admin capability token."""

from __future__ import annotations

from dataclasses import dataclass, field
import hashlib
import hmac
import secrets


def key_fingerprint(secret: str) -> str:
    """One-way digest of an admin secret; safe to persist and publish."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


@dataclass(eq=False)
class AdminCap:
    """Credential authorizing fee withdrawal and fee destination changes.

    The market keeps only ``fingerprint`` and checks presented caps against it,
    so a cap can be rebuilt only by someone who already knows ``secret``.
    ``holder`` is a label and carries no authority.
    """

    holder: str
    secret: str = field(default_factory=lambda: secrets.token_hex(32), repr=False)

    @property
    def fingerprint(self) -> str:
        return key_fingerprint(self.secret)

    def matches(self, fingerprint: str) -> bool:
        return hmac.compare_digest(self.fingerprint, fingerprint)

    def transfer(self, new_holder: str) -> None:
        if not new_holder:
            raise ValueError("new_holder must be a non-empty identity")
        self.holder = new_holder
