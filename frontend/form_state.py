"""
Estado do formulário de paciente (sem dependência de Streamlit).
As funções recebem o st.session_state (ou qualquer MutableMapping) para facilitar testes.
"""
from datetime import date
from typing import Any, Dict, Iterable, MutableMapping

from backend.utils.cpf_utils import CPFUtils
from backend.utils.mask_utils import MaskUtils

FIELD_PREFIX = "f_"

SECTION_DEFAULTS = {
    "personal_data": True,
    "observations": False,
    "contact": True,
    "address": True,
}

FIELD_DEFAULTS: Dict[str, Any] = {
    "name": "", "social_name": "", "cpf": "", "rg": "",
    "other_doc_type": "", "other_doc_number": "",
    "gender": "masculino", "birth_date": None,
    "ethnicity": "", "race": "", "birth_place": "", "nationality": "",
    "profession": "", "marital_status": "", "spouse_name": "",
    "mother_name": "", "mother_profession": "", "father_name": "", "father_profession": "",
    "guardian_name": "", "guardian_cpf": "",
    "is_newborn_in_plan": False, "legacy_code": "",
    "observations": "",
    "email": "", "cellphone": "", "phone1": "", "phone2": "",
    "cep": "", "street": "", "number": "", "complement": "",
    "neighborhood": "", "city": "", "state": "", "reference": "",
}

ADDRESS_FIELDS = ["street", "neighborhood", "city", "state"]

MASKED_FIELDS = {
    "cpf": ("cpf", CPFUtils.format_cpf),
    "guardian_cpf": ("cpf", CPFUtils.format_cpf),
    "cellphone": ("cellphone", MaskUtils.format_phone),
    "phone1": ("phone", MaskUtils.format_phone),
    "phone2": ("phone", MaskUtils.format_phone),
    "cep": ("cep", MaskUtils.format_cep),
}


def key(field: str) -> str:
    return f"{FIELD_PREFIX}{field}"


def init_state(state: MutableMapping) -> None:
    for field, default in FIELD_DEFAULTS.items():
        state.setdefault(key(field), default)
    state.setdefault("sections", dict(SECTION_DEFAULTS))
    state.setdefault("attachments", [])
    state.setdefault("uploader_seen", [])
    state.setdefault("photo", None)
    state.setdefault("last_cep", "")
    state.setdefault("uploader_version", 0)


def keep_fields(state: MutableMapping) -> None:
    """
    Reatribui os valores dos campos a cada execução.
    O Streamlit descarta o estado de widgets não renderizados (seções recolhidas).
    """
    for field in FIELD_DEFAULTS:
        state[key(field)] = state[key(field)]


def toggle_section(state: MutableMapping, section: str) -> None:
    sections = dict(state.get("sections") or SECTION_DEFAULTS)
    sections[section] = not sections.get(section, False)
    state["sections"] = sections


def reset_form(state: MutableMapping) -> None:
    """Volta o formulário aos valores padrão (botão Limpar)."""
    for field, default in FIELD_DEFAULTS.items():
        state[key(field)] = default
    state["sections"] = dict(SECTION_DEFAULTS)
    state["attachments"] = []
    state["uploader_seen"] = []
    state["photo"] = None
    state["last_cep"] = ""
    state["form_errors"] = {}
    # Novas chaves descartam os arquivos já carregados nos uploaders
    state["uploader_version"] = state.get("uploader_version", 0) + 1


def file_meta(uploaded) -> Dict[str, Any]:
    """Metadados de um arquivo enviado (UploadedFile do Streamlit ou objeto equivalente)."""
    return {
        "filename": getattr(uploaded, "name", ""),
        "content_type": getattr(uploaded, "type", None) or "application/octet-stream",
        "size": int(getattr(uploaded, "size", 0) or 0),
    }


def add_attachments(state: MutableMapping, files: Iterable) -> None:
    """
    Sincroniza a lista de anexos com o conteúdo atual do uploader.
    O uploader devolve os mesmos arquivos a cada execução: um arquivo só entra uma vez
    enquanto permanecer no uploader, mesmo que tenha sido removido da lista.
    """
    metas = [file_meta(f) for f in files or []]
    in_uploader = {(m["filename"], m["size"]) for m in metas}
    seen = {tuple(k) for k in state.get("uploader_seen") or ()} & in_uploader
    current = list(state.get("attachments") or [])
    known = {(a["filename"], a["size"]) for a in current}
    for meta in metas:
        file_key = (meta["filename"], meta["size"])
        if not meta["filename"] or file_key in seen:
            continue
        seen.add(file_key)
        if file_key not in known:
            current.append(meta)
            known.add(file_key)
    state["uploader_seen"] = sorted(seen)
    state["attachments"] = current


def remove_attachment(state: MutableMapping, index: int) -> None:
    current = list(state.get("attachments") or [])
    if 0 <= index < len(current):
        current.pop(index)
    state["attachments"] = current


def placeholder(mask: str) -> str:
    return mask.replace("#", "0")


def mask_hint(options: Dict[str, Any], field: str) -> str:
    """Placeholder do campo a partir das máscaras de /api/v1/form-options."""
    mask_name = MASKED_FIELDS[field][0]
    return placeholder(options.get("masks", {}).get(mask_name, ""))


def apply_mask(state: MutableMapping, field: str) -> None:
    """Callback on_change: aplica a máscara quando o campo tem a quantidade certa de dígitos."""
    formatter = MASKED_FIELDS[field][1]
    value = state.get(key(field)) or ""
    state[key(field)] = formatter(value.strip())


def should_lookup_cep(state: MutableMapping, cep: str) -> bool:
    """Busca o CEP uma única vez por valor completo (8 dígitos)."""
    return MaskUtils.is_complete_cep(cep) and MaskUtils.only_digits(cep) != state.get("last_cep")


def record_cep_result(state: MutableMapping, cep: str, ok: bool, status: int, data: Any) -> None:
    """
    Registra o resultado da consulta de CEP.
    Só sucesso ou 404 encerram a busca automática; falhas de rede ficam para nova tentativa.
    """
    if ok:
        apply_address(state, cep, data)
    elif status == 404:
        state["last_cep"] = MaskUtils.only_digits(cep)


def apply_address(state: MutableMapping, cep: str, address: Dict[str, Any]) -> None:
    state["last_cep"] = MaskUtils.only_digits(cep)
    for field in ADDRESS_FIELDS:
        value = address.get(field)
        if value:
            state[key(field)] = value


def build_payload(state: MutableMapping) -> Dict[str, Any]:
    """Monta o JSON enviado para POST /api/v1/patients."""
    payload: Dict[str, Any] = {}
    for field in FIELD_DEFAULTS:
        value = state.get(key(field))
        if isinstance(value, date):
            value = value.isoformat()
        elif isinstance(value, str):
            value = value.strip()
        payload[field] = value
    payload["attachments"] = list(state.get("attachments") or [])
    if state.get("photo"):
        payload["photo"] = state["photo"]
    return payload


def local_errors(payload: Dict[str, Any]) -> Dict[str, str]:
    """Validação rápida no cliente, antes do envio (a API valida tudo novamente)."""
    errors: Dict[str, str] = {}
    if len((payload.get("name") or "").strip()) < 2:
        errors["name"] = "Nome é obrigatório"
    if not CPFUtils.is_valid_cpf(payload.get("cpf")):
        errors["cpf"] = "CPF inválido"
    if payload.get("guardian_cpf") and not CPFUtils.is_valid_cpf(payload["guardian_cpf"]):
        errors["guardian_cpf"] = "CPF do responsável inválido"
    if not payload.get("birth_date"):
        errors["birth_date"] = "Data de nascimento é obrigatória"
    return errors
