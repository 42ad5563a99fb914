import base64

import httpx
import pytest

from frontend import api_client

BASE = "http://api.test"
AUTH = ("admin", "admin123")


def client_for(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_create_patient_posts_payload():
    def handler(request):
        assert request.url.path == "/api/v1/patients"
        assert request.headers["authorization"].startswith("Basic ")
        return httpx.Response(201, json={"intake_id": "abc", "status": "queued"})

    async with client_for(handler) as client:
        ok, data, status = await api_client.create_patient(client, {"name": "Ana"}, AUTH, base=BASE)
    assert (ok, status) == (True, 201)
    assert data["intake_id"] == "abc"


@pytest.mark.asyncio
async def test_validation_error_details():
    body = {"detail": {"message": "Dados inválidos", "errors": {"cpf": "CPF inválido"}}}

    async with client_for(lambda request: httpx.Response(422, json=body)) as client:
        ok, data, status = await api_client.create_patient(client, {}, AUTH, base=BASE)
    assert (ok, status) == (False, 422)
    assert api_client.error_detail(data) == "Dados inválidos"
    assert api_client.field_errors(data) == {"cpf": "CPF inválido"}


@pytest.mark.asyncio
async def test_network_error_returns_status_zero():
    def handler(request):
        raise httpx.ConnectError("sem rede", request=request)

    async with client_for(handler) as client:
        ok, data, status = await api_client.lookup_cep(client, "01001000", AUTH, base=BASE)
    assert (ok, status) == (False, 0)
    assert "sem rede" in api_client.error_detail(data)


@pytest.mark.asyncio
async def test_validate_credentials():
    def handler(request):
        expected = "Basic " + base64.b64encode(b"admin:admin123").decode()
        if request.headers.get("authorization") == expected:
            return httpx.Response(200, json={"status": "ok"})
        return httpx.Response(401, json={"detail": "Credenciais inválidas"})

    async with client_for(handler) as client:
        assert await api_client.validate_credentials(client, *AUTH, base=BASE) is True
        assert await api_client.validate_credentials(client, "admin", "x", base=BASE) is False


def test_error_detail_plain_values():
    assert api_client.error_detail({"detail": "Paciente já cadastrado"}) == "Paciente já cadastrado"
    assert api_client.error_detail({"raw": "oops"}) == {"raw": "oops"}
    assert api_client.field_errors({"detail": "x"}) == {}
