"""Orchestrator error types."""

from __future__ import annotations


class LoyaltyOrchestratorError(RuntimeError):
    """Base orchestrator error."""


class CredentialStoreError(LoyaltyOrchestratorError):
    """Wallet record could not be read or written."""


class CredentialNotFoundError(CredentialStoreError):
    """No identity stored under the requested name."""


class CredentialExistsError(CredentialStoreError):
    """An identity is already stored under the requested name."""


class RemoteRequestError(LoyaltyOrchestratorError):
    """A remote service returned a structured error response."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        detail: object | None = None,
        error_code: str | None = None,
        body: object | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
        self.error_code = error_code
        self.body = body


class CARequestError(RemoteRequestError):
    """Certificate authority rejected a request."""

    def __init__(self, message: str, *, errors: list[dict] | None = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.errors = list(errors or [])

    @property
    def codes(self) -> tuple[int, ...]:
        return tuple(e["code"] for e in self.errors if isinstance(e.get("code"), int))


class EnrollmentError(LoyaltyOrchestratorError):
    """Enrollment or registration failed."""


class AlreadyRegisteredError(EnrollmentError):
    """Enrollment id is registered at the authority but absent from the wallet."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"identity {name!r} is already registered at the certificate authority "
            "but missing from the wallet; configure its enrollment secret to enroll it"
        )
        self.name = name


class LedgerConnectionError(LoyaltyOrchestratorError):
    """Ledger gateway or certificate authority could not be reached."""


class ContractCallError(RemoteRequestError):
    """Gateway rejected a submit or evaluate call."""

    @property
    def endorsements(self) -> list[dict]:
        if isinstance(self.body, dict) and isinstance(self.body.get("endorsements"), list):
            return [e for e in self.body["endorsements"] if isinstance(e, dict)]
        return []


class SessionStateError(LoyaltyOrchestratorError):
    """Session used out of order: stale handle or overlapping connect."""


class WorkflowAborted(LoyaltyOrchestratorError):
    """Workflow stopped on a fatal classified failure."""

    def __init__(self, classification, *, state: str, step: str) -> None:  # noqa: ANN001
        super().__init__(f"{step} failed in state {state}: {classification.message}")
        self.classification = classification
        self.state = state
        self.step = step


class CAUnavailableError(EnrollmentError, LedgerConnectionError):
    """Certificate authority could not be reached."""
