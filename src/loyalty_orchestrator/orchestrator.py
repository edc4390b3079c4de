"""Loyalty token workflow driven over single-identity ledger sessions.

States advance strictly in order::

    Start -> AdminReady -> Initialized -> Funded -> Distributed -> Approved -> Settled

Only ``Initialize`` is guarded against re-execution (by reading ``TokenName``
first). Mint, Transfer, Approve and TransferFrom run once per call of ``run``; a
run that aborted part-way must not simply be repeated.
"""

from __future__ import annotations

from contextlib import ExitStack, contextmanager
from dataclasses import asdict, dataclass, field
from typing import Callable, Iterator, TextIO, TypeVar

from loyalty_orchestrator.classifier import Classification, ErrorKind, classify
from loyalty_orchestrator.context import OrchestratorContext
from loyalty_orchestrator.enrollment import EnrollmentService
from loyalty_orchestrator.errors import ContractCallError, LoyaltyOrchestratorError, WorkflowAborted
from loyalty_orchestrator.sessions import ContractHandle, SessionManager
from loyalty_orchestrator.types import WORKFLOW_STATES, Identity, WorkflowState

T = TypeVar("T")

TOTAL_STEPS = len(WORKFLOW_STATES) - 1


@dataclass
class WorkflowReport:
    state: WorkflowState = "Start"
    initialized_now: bool = False
    token_name: str | None = None
    total_supply: int | None = None
    admin_account_id: str | None = None
    account_ids: dict[str, str] = field(default_factory=dict)
    balances: dict[str, int] = field(default_factory=dict)
    enrolled: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def advance(self, state: WorkflowState) -> None:
        expected = WORKFLOW_STATES[WORKFLOW_STATES.index(self.state) + 1]
        if state != expected:
            raise ValueError(f"invalid transition {self.state} -> {state}")
        self.state = state

    def to_dict(self) -> dict:
        return asdict(self)


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8").strip()


def _as_int(raw: bytes, call: str) -> int:
    text = _decode(raw)
    try:
        return int(text)
    except ValueError as exc:
        raise ContractCallError(f"{call} returned a non-integer value: {text!r}") from exc


class LedgerOrchestrator:
    def __init__(
        self,
        *,
        context: OrchestratorContext,
        enrollment: EnrollmentService,
        sessions: SessionManager,
        stdout: TextIO | None = None,
    ) -> None:
        self._context = context
        self._enrollment = enrollment
        self._sessions = sessions
        self._stdout = stdout

    def _say(self, message: str) -> None:
        if self._stdout is not None:
            print(message, file=self._stdout)

    def _step(self, index: int, title: str) -> None:
        self._say(f"Step {index}/{TOTAL_STEPS}: {title}")

    def _call(
        self,
        report: WorkflowReport,
        step: str,
        fn: Callable[[], T],
        *,
        tolerate: tuple[ErrorKind, ...] = (),
    ) -> T | None:
        """Run one remote or wallet operation; tolerated kinds yield None."""
        try:
            return fn()
        except (LoyaltyOrchestratorError, ValueError) as exc:
            classification = classify(exc)
            if classification.kind not in tolerate:
                raise WorkflowAborted(classification, state=report.state, step=step) from exc
            self._note(report, step, classification)
            return None

    def _note(self, report: WorkflowReport, step: str, classification: Classification) -> None:
        report.skipped.append(f"{step}: {classification.kind}")
        self._say(f"  {step}: {classification.kind} ({classification.message})")

    @contextmanager
    def _connected(self, report: WorkflowReport, identity: Identity) -> Iterator[ContractHandle]:
        with ExitStack() as stack:
            yield self._call(
                report,
                f"connect as {identity.name}",
                lambda: stack.enter_context(self._sessions.session(identity)),
            )

    def run(self) -> WorkflowReport:
        report = WorkflowReport()

        self._step(1, "ensuring admin identity")
        admin = self._ensure_admin(report)
        with self._connected(report, admin) as contract:
            report.advance("AdminReady")

            self._step(2, "ensuring token contract is initialized")
            self._ensure_initialized(report, contract)
            report.advance("Initialized")

            self._step(3, f"minting {self._context.workflow.mint_amount} points")
            self._fund(report, contract)
            report.advance("Funded")

        self._step(4, "distributing points to counterparties")
        counterparties: list[Identity] = []
        for name in self._context.workflow.counterparties:
            counterparties.append(self._distribute_to(report, admin, name))
        report.advance("Distributed")

        owner = counterparties[0]
        self._step(5, f"{owner.name} approving admin allowance")
        self._approve(report, owner)
        report.advance("Approved")

        self._step(6, f"admin settling allowance from {owner.name}")
        self._settle(report, admin, owner)
        report.advance("Settled")
        return report

    def _ensure_admin(self, report: WorkflowReport) -> Identity:
        identity, created = self._call(report, "enroll admin", self._enrollment.enroll_admin)
        if created:
            report.enrolled.append(identity.name)
            self._say(f"  enrolled {identity.name} and stored it in the wallet")
        else:
            self._say(f"  {identity.name} identity already exists in wallet")
        return identity

    def _ensure_initialized(self, report: WorkflowReport, contract: ContractHandle) -> None:
        raw = self._call(
            report,
            "TokenName",
            lambda: contract.evaluate("TokenName"),
            tolerate=("ContractNotInitialized",),
        )
        token_name = _decode(raw) if raw else ""
        if token_name:
            report.token_name = token_name
            self._say(f"  contract already initialized with name: {token_name}")
            return

        token = self._context.token
        self._call(
            report,
            "Initialize",
            lambda: contract.submit("Initialize", token.name, token.symbol, token.decimals),
        )
        report.initialized_now = True
        report.token_name = token.name
        self._say(
            f"  initialized contract: name={token.name} symbol={token.symbol} "
            f"decimals={token.decimals}"
        )

    def _fund(self, report: WorkflowReport, contract: ContractHandle) -> None:
        amount = self._context.workflow.mint_amount
        self._call(report, "Mint", lambda: contract.submit("Mint", amount))

        report.total_supply = self._call(
            report, "TotalSupply", lambda: _as_int(contract.evaluate("TotalSupply"), "TotalSupply")
        )
        report.admin_account_id = self._call(
            report, "ClientAccountID", lambda: _decode(contract.evaluate("ClientAccountID"))
        )
        admin_name = self._context.admin_name
        report.account_ids[admin_name] = report.admin_account_id
        report.balances[admin_name] = self._call(
            report,
            "ClientAccountBalance",
            lambda: _as_int(contract.evaluate("ClientAccountBalance"), "ClientAccountBalance"),
        )
        self._say(f"  total supply: {report.total_supply}")
        self._say(f"  admin account: {report.admin_account_id}")
        self._say(f"  admin balance: {report.balances[admin_name]}")

    def _ensure_counterparty(self, report: WorkflowReport, admin: Identity, name: str) -> Identity:
        identity, created = self._call(
            report, f"register {name}", lambda: self._enrollment.register_and_enroll(name, admin)
        )
        if created:
            report.enrolled.append(name)
            self._say(f"  registered and enrolled {name}")
        else:
            self._say(f"  {name} identity already exists in wallet")
        return identity

    def _distribute_to(self, report: WorkflowReport, admin: Identity, name: str) -> Identity:
        identity = self._ensure_counterparty(report, admin, name)

        # An account id can only be learned by querying as that identity.
        with self._connected(report, identity) as contract:
            account_id = self._call(
                report,
                f"ClientAccountID as {name}",
                lambda: _decode(contract.evaluate("ClientAccountID")),
            )
        report.account_ids[name] = account_id

        amount = self._context.workflow.transfer_amount
        with self._connected(report, admin) as contract:
            self._call(
                report,
                f"Transfer to {name}",
                lambda: contract.submit("Transfer", account_id, amount),
            )
            report.balances[admin.name] = self._call(
                report,
                "ClientAccountBalance",
                lambda: _as_int(contract.evaluate("ClientAccountBalance"), "ClientAccountBalance"),
            )
            report.balances[name] = self._call(
                report,
                f"BalanceOf {name}",
                lambda: _as_int(contract.evaluate("BalanceOf", account_id), "BalanceOf"),
            )
        self._say(f"  transferred {amount} points to {name}")
        self._say(
            f"  admin balance: {report.balances[admin.name]}, "
            f"{name} balance: {report.balances[name]}"
        )
        return identity

    def _approve(self, report: WorkflowReport, owner: Identity) -> None:
        amount = self._context.workflow.allowance_amount
        spender = report.admin_account_id
        with self._connected(report, owner) as contract:
            self._call(
                report,
                f"Approve as {owner.name}",
                lambda: contract.submit("Approve", spender, amount),
            )
        self._say(f"  {owner.name} approved admin to spend {amount} points")

    def _settle(self, report: WorkflowReport, admin: Identity, owner: Identity) -> None:
        amount = self._context.workflow.allowance_amount
        owner_account = report.account_ids[owner.name]
        admin_account = report.admin_account_id
        with self._connected(report, admin) as contract:
            self._call(
                report,
                "TransferFrom",
                lambda: contract.submit("TransferFrom", owner_account, admin_account, amount),
            )
            report.balances[admin.name] = self._call(
                report,
                f"BalanceOf {admin.name}",
                lambda: _as_int(contract.evaluate("BalanceOf", admin_account), "BalanceOf"),
            )
            report.balances[owner.name] = self._call(
                report,
                f"BalanceOf {owner.name}",
                lambda: _as_int(contract.evaluate("BalanceOf", owner_account), "BalanceOf"),
            )
        self._say(f"  final admin balance: {report.balances[admin.name]}")
        self._say(f"  final {owner.name} balance: {report.balances[owner.name]}")


__all__ = ["LedgerOrchestrator", "WorkflowReport"]
