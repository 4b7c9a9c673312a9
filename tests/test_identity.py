"""
Tests for the identity registry
"""

from datetime import date

import pytest

from medconsent.exceptions import (
    DuplicateIdentifierError,
    InvalidCredentialsError,
    NotFoundError,
    ValidationError,
)
from medconsent.crypto.hash import hash_password
from medconsent.identity.models import Individual, Institution, Sex
from medconsent.identity.registry import IdentityRegistry
from medconsent.identity.subject_keys import derive_subject_key, is_valid_subject_key
from medconsent.storage import InMemoryExchangeRepository


class TestSubjectKeys:
    """Test subject key derivation"""

    def test_key_shape(self):
        """Keys are 14 digits"""
        key = derive_subject_key("Ada Lovelace", "555-0100")

        assert len(key) == 14
        assert key.isdigit()
        assert is_valid_subject_key(key)

    def test_derivation_is_deterministic(self):
        """Same holder, month and disambiguator give the same key"""
        issued = date(2024, 3, 14)
        first = derive_subject_key("Ada Lovelace", "555 0100", issued, disambiguator=42)
        second = derive_subject_key("  ada   LOVELACE ", "5550100", date(2024, 3, 1), disambiguator=42)

        assert first == second
        assert first.endswith("0042")

    def test_derivation_depends_on_holder_and_month(self):
        issued = date(2024, 3, 14)
        base = derive_subject_key("Ada Lovelace", "5550100", issued, disambiguator=1)

        assert derive_subject_key("Grace Hopper", "5550100", issued, disambiguator=1) != base
        assert derive_subject_key("Ada Lovelace", "5550199", issued, disambiguator=1) != base
        assert derive_subject_key("Ada Lovelace", "5550100", date(2024, 4, 1), disambiguator=1) != base

    def test_invalid_keys(self):
        assert not is_valid_subject_key("")
        assert not is_valid_subject_key("12345")
        assert not is_valid_subject_key("1234567890123-")


class TestIdentityRegistry:
    """Test registration, lookup and authentication"""

    def setup_method(self):
        """Setup test environment"""
        self.storage = InMemoryExchangeRepository()
        self.registry = IdentityRegistry(self.storage, hash_rounds=4)

    def test_register_institution(self):
        """Institution emails are normalised and secrets hashed"""
        institution = self.registry.register_institution(" Admin@General.org ", "General Hospital", "pw")

        assert isinstance(institution, Institution)
        assert institution.login_email == "admin@general.org"
        assert institution.credential_hash != "pw"
        assert self.registry.find_by_login_email("ADMIN@general.org") == institution

    def test_register_institution_duplicate_email(self):
        self.registry.register_institution("admin@general.org", "General Hospital", "pw")

        with pytest.raises(DuplicateIdentifierError) as exc_info:
            self.registry.register_institution("admin@general.org", "Other", "pw2")

        assert exc_info.value.details["field"] == "login_email"

    def test_register_institution_requires_email(self):
        with pytest.raises(ValidationError):
            self.registry.register_institution("not-an-email", "General Hospital", "pw")

    def test_register_individual_with_supplied_key(self):
        individual = self.registry.register_individual(
            "ABCDEFGHIJ1234", "Ada Lovelace", "female", "555-0100", "pw"
        )

        assert isinstance(individual, Individual)
        assert individual.subject_key == "ABCDEFGHIJ1234"
        assert individual.sex == Sex.FEMALE
        assert self.registry.exists_subject_key("ABCDEFGHIJ1234")
        assert not self.registry.exists_subject_key("ZZZZZZZZZZ9999")

    def test_register_individual_duplicate_key(self):
        self.registry.register_individual("ABCDEFGHIJ1234", "Ada Lovelace", "female", "5550100", "pw")

        with pytest.raises(DuplicateIdentifierError):
            self.registry.register_individual("ABCDEFGHIJ1234", "Grace Hopper", "female", "5550199", "pw")

    def test_register_individual_rejects_malformed_key(self):
        with pytest.raises(ValidationError):
            self.registry.register_individual("short", "Ada Lovelace", "female", "5550100", "pw")

    def test_register_individual_rejects_unknown_sex(self):
        with pytest.raises(ValidationError):
            self.registry.register_individual(None, "Ada Lovelace", "unknown", "5550100", "pw")

    def test_generated_key_is_reused_for_same_holder(self):
        """Generating twice for the same (name, phone) yields one account and one key"""
        first = self.registry.register_individual(None, "Ada Lovelace", "female", "555-0100", "pw")
        second = self.registry.register_individual(None, "ada lovelace", "female", "5550100", "other")

        assert first.subject_key == second.subject_key
        assert first.id == second.id
        assert len(self.storage.accounts) == 1

    def test_generated_key_differs_for_other_holder(self):
        first = self.registry.register_individual(None, "Ada Lovelace", "female", "5550100", "pw")
        other = self.registry.register_individual(None, "Grace Hopper", "female", "5550199", "pw")

        assert first.subject_key != other.subject_key

    def test_issue_subject_key_returns_existing(self):
        individual = self.registry.register_individual(None, "Ada Lovelace", "female", "5550100", "pw")

        assert self.registry.issue_subject_key("Ada Lovelace", "5550100") == individual.subject_key
        assert is_valid_subject_key(self.registry.issue_subject_key("Grace Hopper", "5550199"))

    def test_authenticate_institution_and_individual(self):
        institution = self.registry.register_institution("admin@general.org", "General Hospital", "h-pw")
        individual = self.registry.register_individual(None, "Ada Lovelace", "female", "5550100", "p-pw")

        assert self.registry.authenticate("admin@general.org", "h-pw").id == institution.id

        logged_in = self.registry.authenticate(individual.subject_key, "p-pw")
        assert logged_in.id == individual.id
        assert logged_in.last_login_at is not None
        assert self.registry.find_by_id(individual.id).last_login_at is not None

    def test_authenticate_rejects_bad_secret(self):
        self.registry.register_institution("admin@general.org", "General Hospital", "h-pw")

        with pytest.raises(InvalidCredentialsError):
            self.registry.authenticate("admin@general.org", "wrong")
        with pytest.raises(InvalidCredentialsError):
            self.registry.authenticate("nobody@nowhere.org", "h-pw")

    def test_authenticate_prefers_institution_on_collision(self):
        """An identifier valid in both spaces resolves to the institution"""
        institution = self.registry.register_institution("shared@id.org", "General Hospital", "pw")
        self.storage.add_account(Individual(
            subject_key="shared@id.org",
            display_name="Colliding Person",
            credential_hash=hash_password("pw", rounds=4),
            sex=Sex.OTHER,
            phone="5550000",
        ))

        assert isinstance(self.registry.authenticate("shared@id.org", "pw"), Institution)
        assert self.registry.authenticate("shared@id.org", "pw").id == institution.id

    def test_get_institution_and_individual_not_found(self):
        with pytest.raises(NotFoundError):
            self.registry.get_institution("institution_missing")
        with pytest.raises(NotFoundError):
            self.registry.get_individual("00000000000000")

        individual = self.registry.register_individual(None, "Ada Lovelace", "female", "5550100", "pw")
        with pytest.raises(NotFoundError):
            self.registry.get_institution(individual.id)

    def test_register_rejects_overlong_secret(self):
        """bcrypt only covers the first 72 bytes of a secret"""
        with pytest.raises(ValidationError):
            self.registry.register_institution("admin@general.org", "General Hospital", "x" * 73)


class TestSubjectKeyIssuanceAcrossBackends:
    """Idempotent key issuance must behave the same on every storage backend"""

    @pytest.fixture(autouse=True)
    def setup_registry(self, exchange_storage):
        self.storage = exchange_storage
        self.registry = IdentityRegistry(self.storage, hash_rounds=4)

    @pytest.mark.parametrize("name, again", [
        ("Ada Lovelace", "ada  LOVELACE"),
        ("Élodie Durand", "Élodie Durand"),
        ("Élodie Durand", "élodie durand"),
        ("Straße Müller", "STRASSE MÜLLER"),
    ])
    def test_generated_key_is_reused(self, name, again):
        first, created = self.registry.enroll_individual(None, name, "female", "555-0100", "pw")
        second, created_again = self.registry.enroll_individual(None, again, "female", "5550100", "pw")

        assert created is True
        assert created_again is False
        assert second.subject_key == first.subject_key
        assert second.id == first.id
        assert self.registry.issue_subject_key(name, "5550100") == first.subject_key

    def test_different_holder_gets_new_account(self):
        first = self.registry.register_individual(None, "Élodie Durand", "female", "5550100", "pw")
        other = self.registry.register_individual(None, "Élodie Durand", "female", "5550199", "pw")

        assert other.id != first.id
        assert other.subject_key != first.subject_key
