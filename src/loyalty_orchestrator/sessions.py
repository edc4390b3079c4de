"""Single-identity session handling against the ledger gateway."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Protocol

from loyalty_orchestrator.context import OrchestratorContext
from loyalty_orchestrator.errors import LoyaltyOrchestratorError, SessionStateError
from loyalty_orchestrator.types import Identity


class LedgerGateway(Protocol):
    def open_session(self, identity: Identity, *, discovery: bool, as_localhost: bool) -> str: ...

    def close_session(self, identity: Identity, session_id: str) -> None: ...

    def submit(
        self, identity: Identity, session_id: str, name: str, args: tuple[str, ...]
    ) -> bytes: ...

    def evaluate(
        self, identity: Identity, session_id: str, name: str, args: tuple[str, ...]
    ) -> bytes: ...


class ContractHandle:
    """Contract calls bound to one open session."""

    def __init__(self, session: "Session", gateway: LedgerGateway) -> None:
        self._session = session
        self._gateway = gateway

    def _check_open(self, name: str) -> None:
        if not self._session.is_open:
            raise SessionStateError(
                f"cannot call {name}: session for {self._session.identity.name!r} is closed"
            )

    def submit(self, name: str, *args: object) -> bytes:
        """Submit a transaction and wait for it to commit."""
        self._check_open(name)
        return self._gateway.submit(
            self._session.identity, self._session.session_id, name, tuple(str(a) for a in args)
        )

    def evaluate(self, name: str, *args: object) -> bytes:
        """Run a read-only query."""
        self._check_open(name)
        return self._gateway.evaluate(
            self._session.identity, self._session.session_id, name, tuple(str(a) for a in args)
        )


class Session:
    def __init__(self, identity: Identity, session_id: str, gateway: LedgerGateway) -> None:
        self.identity = identity
        self.session_id = session_id
        self.is_open = True
        self.contract = ContractHandle(self, gateway)

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"Session(identity={self.identity.name!r}, {state})"


class SessionManager:
    """Owns at most one live gateway session.

    Switching identity is always disconnect-then-connect; ``connect_as`` refuses to
    open a second session while one is live.
    """

    def __init__(self, *, context: OrchestratorContext, gateway: LedgerGateway) -> None:
        self._context = context
        self._gateway = gateway
        self._active: Session | None = None

    @property
    def active(self) -> Session | None:
        return self._active

    def connect_as(self, identity: Identity) -> Session:
        if self._active is not None:
            raise SessionStateError(
                f"session for {self._active.identity.name!r} is still open; "
                f"disconnect before connecting as {identity.name!r}"
            )
        session_id = self._gateway.open_session(
            identity,
            discovery=self._context.discovery_enabled,
            as_localhost=self._context.as_localhost,
        )
        self._active = Session(identity, session_id, self._gateway)
        return self._active

    def disconnect(self, session: Session | None = None) -> bool:
        """Release a session; returns True when the gateway confirmed the release.

        The session is unusable afterwards even if the gateway could not be reached.
        """
        target = session or self._active
        if target is None or not target.is_open:
            return False
        target.is_open = False
        if self._active is target:
            self._active = None
        try:
            self._gateway.close_session(target.identity, target.session_id)
        except (LoyaltyOrchestratorError, ValueError):
            return False
        return True

    @contextmanager
    def session(self, identity: Identity) -> Iterator[ContractHandle]:
        active = self.connect_as(identity)
        try:
            yield active.contract
        finally:
            self.disconnect(active)


__all__ = ["SessionManager", "Session", "ContractHandle", "LedgerGateway"]
