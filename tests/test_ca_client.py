from __future__ import annotations

import base64
import json
import types

import pytest
import requests

from loyalty_orchestrator.ca_client import CertificateAuthorityClient, RegistrationRequest
from loyalty_orchestrator.crypto.keys import generate_private_key, private_key_to_pem
from loyalty_orchestrator.errors import CARequestError, CAUnavailableError, EnrollmentError
from loyalty_orchestrator.types import Identity

CERT_PEM = b"-----BEGIN CERTIFICATE-----\nissued\n-----END CERTIFICATE-----\n"


def _response(status_code: int, payload: object) -> types.SimpleNamespace:
    text = json.dumps(payload)
    return types.SimpleNamespace(
        status_code=status_code,
        text=text,
        json=lambda: json.loads(text),
    )


def _admin() -> Identity:
    return Identity(
        name="admin",
        msp_id="Org1MSP",
        certificate=CERT_PEM,
        private_key=private_key_to_pem(generate_private_key()),
    )


def test_enroll_posts_csr_with_basic_auth(monkeypatch) -> None:
    client = CertificateAuthorityClient(base_url="https://localhost:7054/", ca_name="ca-org1")
    captured: dict[str, object] = {}

    def fake_request(method, url, *, data=None, headers=None, auth=None, timeout=None):  # noqa: ANN001
        captured.update(method=method, url=url, data=data, auth=auth, timeout=timeout)
        return _response(
            201,
            {
                "success": True,
                "result": {"Cert": base64.b64encode(CERT_PEM).decode("ascii")},
                "errors": [],
                "messages": [],
            },
        )

    monkeypatch.setattr(client._session, "request", fake_request)

    cert = client.enroll(enrollment_id="admin", secret="adminpw", csr_pem="CSR")

    assert cert == CERT_PEM
    assert captured["method"] == "POST"
    assert captured["url"] == "https://localhost:7054/api/v1/enroll"
    assert captured["auth"] == ("admin", "adminpw")
    assert json.loads(captured["data"]) == {"certificate_request": "CSR", "caname": "ca-org1"}


def test_register_sends_token_and_returns_secret(monkeypatch) -> None:
    client = CertificateAuthorityClient(base_url="https://localhost:7054")
    captured: dict[str, object] = {}

    def fake_request(method, url, *, data=None, headers=None, auth=None, timeout=None):  # noqa: ANN001
        captured.update(url=url, data=data, headers=headers, auth=auth)
        return _response(201, {"success": True, "result": {"secret": "s3cr3t"}})

    monkeypatch.setattr(client._session, "request", fake_request)

    secret = client.register(
        RegistrationRequest(enrollment_id="customer1", affiliation="org1.department1"),
        _admin(),
    )

    assert secret == "s3cr3t"
    assert captured["url"] == "https://localhost:7054/api/v1/register"
    assert captured["auth"] is None
    assert json.loads(captured["data"]) == {
        "id": "customer1",
        "affiliation": "org1.department1",
        "type": "client",
        "max_enrollments": -1,
    }
    token = captured["headers"]["Authorization"]
    assert token.split(".")[0] == base64.b64encode(CERT_PEM).decode("ascii")


def test_duplicate_registration_keeps_ca_error_codes(monkeypatch) -> None:
    client = CertificateAuthorityClient(base_url="https://localhost:7054")
    monkeypatch.setattr(
        client._session,
        "request",
        lambda *args, **kwargs: _response(
            500,
            {
                "success": False,
                "result": None,
                "errors": [{"code": 74, "message": "Identity 'customer1' is already registered"}],
            },
        ),
    )

    with pytest.raises(CARequestError) as excinfo:
        client.register(
            RegistrationRequest(enrollment_id="customer1", affiliation="org1.department1"),
            _admin(),
        )

    assert excinfo.value.codes == (74,)
    assert excinfo.value.status_code == 500
    assert "already registered" in str(excinfo.value)


def test_unsuccessful_body_is_an_error_even_with_2xx(monkeypatch) -> None:
    client = CertificateAuthorityClient(base_url="https://localhost:7054")
    monkeypatch.setattr(
        client._session,
        "request",
        lambda *args, **kwargs: _response(
            200, {"success": False, "errors": [{"code": 20, "message": "Authentication failure"}]}
        ),
    )

    with pytest.raises(CARequestError, match="Authentication failure"):
        client.enroll(enrollment_id="admin", secret="wrong", csr_pem="CSR")


def test_transport_failure_is_unavailable_enrollment_error(monkeypatch) -> None:
    client = CertificateAuthorityClient(base_url="https://localhost:7054")

    def boom(*args, **kwargs):  # noqa: ANN001, ANN002, ANN003
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(client._session, "request", boom)

    with pytest.raises(CAUnavailableError) as excinfo:
        client.enroll(enrollment_id="admin", secret="adminpw", csr_pem="CSR")
    assert isinstance(excinfo.value, EnrollmentError)
