"""
Tests for the bcrypt password hasher and the HashRecord codec.
"""

from unittest.mock import patch

import pytest

from auth.errors import CorruptCredential, ValidationError
from auth.password import HashRecord, PasswordHasher
from config.settings import Settings


def _hasher(rounds: int = 4, min_rounds: int = 4) -> PasswordHasher:
    return PasswordHasher(Settings(_env_file=None, bcrypt_rounds=rounds, bcrypt_min_rounds=min_rounds))


class TestHashAndVerify:
    def test_verify_succeeds_only_for_original_secret(self):
        hasher = _hasher()
        record = hasher.hash("P@ss1")
        assert hasher.verify("P@ss1", record)
        for other in ("p@ss1", "P@ss2", "", "P@ss1 "):
            assert not hasher.verify(other, record)

    def test_record_fields(self):
        record = _hasher(rounds=5).hash("secret")
        assert record.algorithm == "2b"
        assert record.cost == 5
        assert len(record.salt) == 22
        assert len(record.digest) == 31

    def test_salt_is_random(self):
        hasher = _hasher()
        a, b = hasher.hash("same"), hasher.hash("same")
        assert a.salt != b.salt
        assert a.digest != b.digest

    def test_verify_accepts_encoded_string(self):
        hasher = _hasher()
        record = hasher.hash("secret")
        assert hasher.verify("secret", record.encoded)

    def test_encoded_round_trips(self):
        record = _hasher().hash("secret")
        assert HashRecord.parse(record.encoded) == record

    def test_secret_over_bcrypt_limit_rejected_on_hash(self):
        with pytest.raises(ValidationError):
            _hasher().hash("x" * 73)

    def test_secret_over_bcrypt_limit_never_verifies(self):
        hasher = _hasher()
        record = hasher.hash("x" * 72)
        assert not hasher.verify("x" * 73, record)

    def test_repr_hides_digest(self):
        record = _hasher().hash("secret")
        assert record.digest not in repr(record)


class TestNeedsRehash:
    def test_current_cost_is_fine(self):
        hasher = _hasher(rounds=5, min_rounds=5)
        assert not hasher.needs_rehash(hasher.hash("secret"))

    def test_cost_below_policy_minimum(self):
        old = _hasher(rounds=4).hash("secret")
        assert _hasher(rounds=5, min_rounds=5).needs_rehash(old)

    def test_older_bcrypt_variant(self):
        record = _hasher().hash("secret")
        legacy = HashRecord(algorithm="2a", cost=record.cost, salt=record.salt, digest=record.digest)
        assert _hasher().needs_rehash(legacy)


class TestCorruptCredential:
    @pytest.mark.parametrize(
        "encoded",
        [
            "",
            "plaintext-password",
            "$2b$12$short",
            "$9z$12$" + "a" * 53,
            "$2b$99$" + "a" * 53,
        ],
    )
    def test_parse_rejects_malformed(self, encoded):
        with pytest.raises(CorruptCredential):
            HashRecord.parse(encoded)

    def test_verify_rejects_malformed(self):
        with pytest.raises(CorruptCredential):
            _hasher().verify("secret", "not-a-bcrypt-hash")


class TestDummyRecord:
    def test_built_with_the_hasher(self):
        hasher = _hasher()
        with patch.object(hasher, "hash", side_effect=AssertionError("hashed on demand")):
            assert not hasher.verify_dummy("anything")
        assert hasher.dummy_record.cost == hasher.rounds
