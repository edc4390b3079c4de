from __future__ import annotations

import pytest
from fake_network import FakeLedgerGateway, build_harness

from loyalty_orchestrator.errors import LedgerConnectionError, SessionStateError


@pytest.fixture
def harness(tmp_path):
    harness = build_harness(tmp_path)
    harness.enrollment.enroll_admin()
    return harness


def test_connect_as_second_identity_without_disconnect_is_rejected(harness) -> None:
    admin = harness.store.get("admin")
    customer, _ = harness.enrollment.register_and_enroll("customer1", admin)

    admin_session = harness.sessions.connect_as(admin)
    with pytest.raises(SessionStateError, match="disconnect before connecting as 'customer1'"):
        harness.sessions.connect_as(customer)

    assert harness.sessions.active is admin_session
    assert harness.gateway.max_open == 1


def test_disconnect_then_connect_switches_identity(harness) -> None:
    admin = harness.store.get("admin")
    customer, _ = harness.enrollment.register_and_enroll("customer1", admin)

    harness.sessions.disconnect(harness.sessions.connect_as(admin))
    session = harness.sessions.connect_as(customer)

    assert session.identity.name == "customer1"
    assert harness.gateway.max_open == 1


def test_stale_contract_handle_is_rejected(harness) -> None:
    admin = harness.store.get("admin")
    session = harness.sessions.connect_as(admin)
    contract = session.contract
    harness.sessions.disconnect(session)

    with pytest.raises(SessionStateError, match="closed"):
        contract.evaluate("TotalSupply")


def test_disconnect_is_idempotent(harness) -> None:
    session = harness.sessions.connect_as(harness.store.get("admin"))

    assert harness.sessions.disconnect(session) is True
    assert harness.sessions.disconnect(session) is False
    assert harness.sessions.disconnect() is False


def test_disconnect_survives_unreachable_gateway(harness) -> None:
    session = harness.sessions.connect_as(harness.store.get("admin"))

    def unreachable(identity, session_id):  # noqa: ANN001
        raise LedgerConnectionError("ledger gateway unreachable")

    harness.gateway.close_session = unreachable

    assert harness.sessions.disconnect(session) is False
    assert session.is_open is False
    assert harness.sessions.active is None


def test_session_scope_releases_on_failure(harness) -> None:
    admin = harness.store.get("admin")

    with pytest.raises(RuntimeError):
        with harness.sessions.session(admin):
            raise RuntimeError("boom")

    assert harness.sessions.active is None
    assert harness.gateway.open_sessions == {}


def test_contract_args_are_sent_as_strings(tmp_path) -> None:
    gateway = FakeLedgerGateway()
    harness = build_harness(tmp_path, gateway=gateway)
    admin, _ = harness.enrollment.enroll_admin()

    with harness.sessions.session(admin) as contract:
        contract.submit("Initialize", "LoyaltyPoints", "LPT", 2)
        assert contract.evaluate("TokenName") == b"LoyaltyPoints"

    assert gateway.contract.decimals == 2


def test_disconnect_survives_unusable_signing_key(harness) -> None:
    session = harness.sessions.connect_as(harness.store.get("admin"))

    def corrupt_key(identity, session_id):  # noqa: ANN001
        raise ValueError("invalid private key PEM")

    harness.gateway.close_session = corrupt_key

    assert harness.sessions.disconnect(session) is False
    assert session.is_open is False
    assert harness.sessions.active is None
