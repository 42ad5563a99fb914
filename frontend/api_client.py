import httpx
import os
from typing import Any, Dict, Optional, Tuple

API_BASE = os.getenv("API_BASE", "http://api:3000")  # service name in docker network (docker compose network)

Auth = Optional[Tuple[str, str]]


# -------------- Helpers --------------
async def fetch_json(client: httpx.AsyncClient, method: str, url: str, auth: Auth = None, **kwargs):
    """Executa a requisição e devolve (ok, dados, status). Falhas de rede viram status 0."""
    try:
        resp = await client.request(method, url, auth=auth, timeout=10, **kwargs)
        if resp.headers.get("content-type", "").startswith("application/json"):
            data = resp.json()
        else:
            data = {"raw": resp.text}
        if resp.is_error:
            return False, data, resp.status_code
        return True, data, resp.status_code
    except httpx.HTTPError as e:
        return False, {"error": str(e)}, 0


def error_detail(data: Any) -> Any:
    """Extrai a mensagem amigável do corpo de erro da API."""
    if not isinstance(data, dict):
        return data
    detail = data.get("detail", data.get("error", data))
    if isinstance(detail, dict) and "message" in detail:
        return detail["message"]
    return detail


def field_errors(data: Any) -> Dict[str, str]:
    """Erros por campo devolvidos pela API em respostas 422."""
    if isinstance(data, dict) and isinstance(data.get("detail"), dict):
        return data["detail"].get("errors", {})
    return {}


async def validate_credentials(client: httpx.AsyncClient, user: str, password: str, base: str = API_BASE) -> bool:
    """Realiza uma chamada ao endpoint raiz para validar credenciais Basic Auth."""
    ok, _, _ = await fetch_json(client, "GET", f"{base}/", auth=(user, password))
    return ok


async def get_form_options(client, auth: Auth, base: str = API_BASE):
    return await fetch_json(client, "GET", f"{base}/api/v1/form-options", auth=auth)


async def lookup_cep(client, cep: str, auth: Auth, base: str = API_BASE):
    return await fetch_json(client, "GET", f"{base}/api/v1/cep/{cep}", auth=auth)


async def create_patient(client, payload: Dict[str, Any], auth: Auth, base: str = API_BASE):
    return await fetch_json(client, "POST", f"{base}/api/v1/patients", auth=auth, json=payload)


async def get_intake_status(client, intake_id: str, auth: Auth, base: str = API_BASE):
    return await fetch_json(client, "GET", f"{base}/api/v1/intakes/{intake_id}", auth=auth)
