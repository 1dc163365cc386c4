"""
Password hashing and verification.

Uses bcrypt for password hashing with automatic
salting and configurable work factor.  Hashes are handled as
``HashRecord`` values and persisted in bcrypt's modular-crypt form
(``$2b$12$<salt><digest>``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

import bcrypt

from auth.errors import CorruptCredential, ValidationError
from config.settings import Settings

ALGORITHM = "2b"
BCRYPT_MAX_BYTES = 72
_MIN_COST, _MAX_COST = 4, 31

_BCRYPT_RE = re.compile(
    r"^\$(?P<algorithm>2[abxy]?)\$(?P<cost>\d{2})\$"
    r"(?P<salt>[./A-Za-z0-9]{22})(?P<digest>[./A-Za-z0-9]{31})$"
)


@dataclass(frozen=True)
class HashRecord:
    algorithm: str
    cost: int
    salt: str
    digest: str

    @property
    def encoded(self) -> str:
        return f"${self.algorithm}${self.cost:02d}${self.salt}{self.digest}"

    @classmethod
    def parse(cls, encoded: str) -> "HashRecord":
        """Parse a stored bcrypt string.  Raises ``CorruptCredential``."""
        match = _BCRYPT_RE.match(encoded or "")
        if match is None:
            raise CorruptCredential()
        cost = int(match.group("cost"))
        if not _MIN_COST <= cost <= _MAX_COST:
            raise CorruptCredential(cost=cost)
        return cls(
            algorithm=match.group("algorithm"),
            cost=cost,
            salt=match.group("salt"),
            digest=match.group("digest"),
        )

    def __repr__(self) -> str:
        return f"HashRecord(algorithm={self.algorithm!r}, cost={self.cost})"


class PasswordHasher:
    def __init__(self, settings: Settings):
        self.rounds = settings.bcrypt_rounds
        self.min_rounds = settings.bcrypt_min_rounds
        # verified against for unknown identifiers; built once, up front
        self.dummy_record = self.hash("not-a-real-password")

    def hash(self, secret: str) -> HashRecord:
        """Hash a secret with bcrypt (fresh salt, configured work factor)."""
        raw = secret.encode()
        if len(raw) > BCRYPT_MAX_BYTES:
            raise ValidationError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes.")
        encoded = bcrypt.hashpw(raw, bcrypt.gensalt(rounds=self.rounds)).decode()
        return HashRecord.parse(encoded)

    def verify(self, secret: str, record: Union[HashRecord, str]) -> bool:
        """Constant-time comparison against a bcrypt hash."""
        if isinstance(record, str):
            record = HashRecord.parse(record)
        raw = secret.encode()
        if len(raw) > BCRYPT_MAX_BYTES:
            # hash() never accepts these, so nothing stored can match
            return False
        try:
            return bcrypt.checkpw(raw, record.encoded.encode())
        except ValueError as exc:
            raise CorruptCredential() from exc

    def needs_rehash(self, record: Union[HashRecord, str]) -> bool:
        if isinstance(record, str):
            record = HashRecord.parse(record)
        return record.algorithm != ALGORITHM or record.cost < self.min_rounds

    def verify_dummy(self, secret: str) -> bool:
        """Burn one bcrypt verify for an unknown identifier."""
        return self.verify(secret, self.dummy_record)
