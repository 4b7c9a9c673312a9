"""
Identity registry for medconsent
Registration, lookup and authentication of institutions and individuals
"""

from __future__ import annotations

from datetime import datetime, UTC
from typing import TYPE_CHECKING, Optional, Tuple
import structlog

from ..config import get_exchange_config
from ..crypto.hash import MAX_SECRET_BYTES, hash_password, verify_password
from ..exceptions import (
    DuplicateIdentifierError,
    InvalidCredentialsError,
    NotFoundError,
    ValidationError,
)
from .models import Account, Individual, Institution, Sex
from .subject_keys import derive_subject_key, is_valid_subject_key, normalize_name, normalize_phone

if TYPE_CHECKING:
    from ..storage.base import ExchangeRepository

logger = structlog.get_logger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class IdentityRegistry:
    """Stores accounts and resolves identities"""

    def __init__(self, storage: ExchangeRepository, hash_rounds: Optional[int] = None):
        self.storage = storage
        self.config = get_exchange_config()
        self.hash_rounds = hash_rounds or self.config.password_hash_rounds

    # -- registration -------------------------------------------------------

    def register_institution(self, email: str, name: str, secret: str) -> Institution:
        """Register an institution; raises DuplicateIdentifierError on a known email"""
        email = normalize_email(email or "")
        if "@" not in email:
            raise ValidationError("A valid login email is required", field="email")
        name = self._require_name(name)
        credential_hash = self._hash_secret(secret)

        with self.storage.atomic():
            if self.storage.get_institution_by_email(email):
                raise DuplicateIdentifierError("login_email", email)

            institution = Institution(
                login_email=email,
                display_name=name,
                credential_hash=credential_hash,
            )
            self.storage.add_account(institution)

        logger.info("Registered institution", account_id=institution.id)
        return institution

    def register_individual(self, subject_key: Optional[str], name: str, sex: Sex | str,
                            phone: str, secret: str) -> Individual:
        """
        Register an individual.

        Passing ``subject_key=None`` asks the registry to issue one. When the
        (name, phone) pair already holds a key, the existing account is
        returned instead of creating a second one. An explicitly supplied key
        that is already taken raises DuplicateIdentifierError.
        """
        individual, _ = self.enroll_individual(subject_key, name, sex, phone, secret)
        return individual

    def enroll_individual(self, subject_key: Optional[str], name: str, sex: Sex | str,
                          phone: str, secret: str) -> Tuple[Individual, bool]:
        """Same as register_individual, also reporting whether an account was created"""
        name = self._require_name(name)
        phone = normalize_phone(phone or "")
        if not phone:
            raise ValidationError("A phone number is required", field="phone")
        try:
            sex = Sex(sex)
        except ValueError:
            raise ValidationError(f"Unsupported sex value: {sex}", field="sex")
        if subject_key is not None and not is_valid_subject_key(subject_key):
            raise ValidationError("Subject key must be 14 alphanumeric characters",
                                  field="subject_key")
        credential_hash = self._hash_secret(secret)

        with self.storage.atomic():
            if subject_key is None:
                existing = self.storage.find_individual(name, phone)
                if existing:
                    logger.info("Subject key already issued", account_id=existing.id)
                    return existing, False
                subject_key = self._unused_subject_key(name, phone)
            elif self.storage.get_individual_by_subject_key(subject_key):
                raise DuplicateIdentifierError("subject_key", subject_key)

            individual = Individual(
                subject_key=subject_key,
                display_name=name,
                credential_hash=credential_hash,
                sex=sex,
                phone=phone,
            )
            self.storage.add_account(individual)

        logger.info("Registered individual", account_id=individual.id)
        return individual, True

    def issue_subject_key(self, name: str, phone: str) -> str:
        """Return the key held by (name, phone), or a fresh unused one"""
        name = self._require_name(name)
        phone = normalize_phone(phone or "")
        with self.storage.atomic():
            existing = self.storage.find_individual(name, phone)
            if existing:
                return existing.subject_key
            return self._unused_subject_key(name, phone)

    # -- lookup -------------------------------------------------------------

    def find_by_id(self, account_id: str) -> Optional[Account]:
        return self.storage.get_account(account_id)

    def find_by_login_email(self, email: str) -> Optional[Institution]:
        return self.storage.get_institution_by_email(normalize_email(email))

    def find_by_subject_key(self, subject_key: str) -> Optional[Individual]:
        return self.storage.get_individual_by_subject_key(subject_key)

    def exists_subject_key(self, subject_key: str) -> bool:
        return self.find_by_subject_key(subject_key) is not None

    def get_institution(self, institution_id: str) -> Institution:
        account = self.storage.get_account(institution_id)
        if not isinstance(account, Institution):
            raise NotFoundError("Institution", institution_id)
        return account

    def get_individual(self, subject_key: str) -> Individual:
        individual = self.find_by_subject_key(subject_key)
        if individual is None:
            raise NotFoundError("Individual", subject_key)
        return individual

    # -- authentication -----------------------------------------------------

    def authenticate(self, identifier: str, secret: str) -> Account:
        """
        Authenticate by login email or subject key.

        Institutions are checked first, so an identifier valid in both
        spaces resolves to the institution.
        """
        identifier = (identifier or "").strip()

        institution = self.find_by_login_email(identifier)
        if institution and verify_password(secret, institution.credential_hash):
            return self._stamp_login(institution)

        individual = self.find_by_subject_key(identifier)
        if individual and verify_password(secret, individual.credential_hash):
            return self._stamp_login(individual)

        logger.warning("Authentication failed", identifier=identifier)
        raise InvalidCredentialsError()

    # -- helpers ------------------------------------------------------------

    def _stamp_login(self, account: Account) -> Account:
        stamped = account.model_copy(update={"last_login_at": datetime.now(UTC)})
        self.storage.update_account(stamped)
        logger.info("Authenticated account", account_id=account.id, kind=account.kind.value)
        return stamped

    def _unused_subject_key(self, name: str, phone: str) -> str:
        for _ in range(self.config.subject_key_max_attempts):
            candidate = derive_subject_key(name, phone)
            if not self.storage.get_individual_by_subject_key(candidate):
                return candidate
            logger.debug("Subject key collision, re-rolling disambiguator")
        raise DuplicateIdentifierError("subject_key", candidate)

    def _hash_secret(self, secret: str) -> str:
        if not secret:
            raise ValidationError("A credential secret is required", field="secret")
        if len(secret.encode("utf-8")) > MAX_SECRET_BYTES:
            raise ValidationError(f"Secrets are limited to {MAX_SECRET_BYTES} bytes",
                                  field="secret")
        return hash_password(secret, rounds=self.hash_rounds)

    @staticmethod
    def _require_name(name: str) -> str:
        name = normalize_name(name or "")
        if not name:
            raise ValidationError("A display name is required", field="name")
        return name
