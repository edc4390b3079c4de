"""Enrollment and registration of wallet identities."""

from __future__ import annotations

from typing import Protocol

from loyalty_orchestrator.ca_client import RegistrationRequest
from loyalty_orchestrator.classifier import classify
from loyalty_orchestrator.context import OrchestratorContext
from loyalty_orchestrator.crypto.keys import build_csr, generate_private_key, private_key_to_pem
from loyalty_orchestrator.errors import (
    AlreadyRegisteredError,
    EnrollmentError,
    LedgerConnectionError,
    LoyaltyOrchestratorError,
)
from loyalty_orchestrator.types import Identity
from loyalty_orchestrator.wallet import CredentialStore


class CertificateAuthority(Protocol):
    def enroll(self, *, enrollment_id: str, secret: str, csr_pem: str) -> bytes: ...

    def register(self, request: RegistrationRequest, registrar: Identity) -> str: ...


class EnrollmentService:
    """Obtain credentials for named identities, at most once per name.

    Both entry points return ``(identity, created)``; ``created`` is False when the
    wallet already held the identity and no request reached the authority.
    """

    def __init__(
        self,
        *,
        context: OrchestratorContext,
        store: CredentialStore,
        ca: CertificateAuthority,
    ) -> None:
        self._context = context
        self._store = store
        self._ca = ca

    def _enroll(self, name: str, secret: str) -> Identity:
        private_key = generate_private_key()
        try:
            certificate = self._ca.enroll(
                enrollment_id=name,
                secret=secret,
                csr_pem=build_csr(name, private_key),
            )
        except LedgerConnectionError:
            raise
        except LoyaltyOrchestratorError as exc:
            raise EnrollmentError(f"failed to enroll {name!r}: {exc}") from exc

        identity = Identity(
            name=name,
            msp_id=self._context.msp_id,
            certificate=certificate,
            private_key=private_key_to_pem(private_key),
        )
        self._store.put(name, identity)
        return identity

    def enroll_admin(self) -> tuple[Identity, bool]:
        name = self._context.admin_name
        if self._store.exists(name):
            return self._store.get(name), False
        return self._enroll(name, self._context.admin_secret), True

    def register_and_enroll(self, name: str, admin: Identity) -> tuple[Identity, bool]:
        if self._store.exists(name):
            return self._store.get(name), False

        request = RegistrationRequest(
            enrollment_id=name,
            affiliation=self._context.affiliation,
            role=self._context.role,
        )
        try:
            secret = self._ca.register(request, admin)
        except LedgerConnectionError:
            raise
        except LoyaltyOrchestratorError as exc:
            if classify(exc).kind != "AlreadyRegisteredRemotely":
                raise EnrollmentError(f"failed to register {name!r}: {exc}") from exc
            known_secret = self._context.enrollment_secrets.get(name)
            if not known_secret:
                raise AlreadyRegisteredError(name) from exc
            secret = known_secret

        return self._enroll(name, secret), True


__all__ = ["EnrollmentService", "CertificateAuthority"]
