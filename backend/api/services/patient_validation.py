"""
Regras de validação do formulário de paciente.
Converte o payload bruto em um documento limpo e um mapa campo -> mensagem de erro.
"""
from datetime import date
from typing import Any, Dict, List, Tuple
from email_validator import validate_email, EmailNotValidError

from backend.utils.cpf_utils import CPFUtils
from backend.utils.mask_utils import MaskUtils

REQUIRED_FIELDS = ["name", "cpf", "gender", "birth_date"]

GENDERS = {"masculino": "Masculino", "feminino": "Feminino", "outro": "Outro"}
OTHER_DOC_TYPES = {
    "cnh": "CNH",
    "passaporte": "Passaporte",
    "carteira_trabalho": "Carteira de Trabalho",
    "titulo_eleitor": "Título de Eleitor",
}
ETHNICITIES = {
    "branca": "Branca",
    "preta": "Preta",
    "parda": "Parda",
    "amarela": "Amarela",
    "indigena": "Indígena",
}
MARITAL_STATUSES = {
    "solteiro": "Solteiro(a)",
    "casado": "Casado(a)",
    "divorciado": "Divorciado(a)",
    "viuvo": "Viúvo(a)",
    "uniao_estavel": "União Estável",
}
STATES = [
    "AC", "AL", "AM", "AP", "BA", "CE", "DF", "ES", "GO", "MA",
    "MG", "MS", "MT", "PA", "PB", "PE", "PI", "PR", "RJ", "RN",
    "RO", "RR", "RS", "SC", "SE", "SP", "TO",
]

TEXT_FIELDS = [
    "social_name", "rg", "other_doc_number", "race", "birth_place", "nationality",
    "profession", "mother_name", "mother_profession", "father_name", "father_profession",
    "guardian_name", "spouse_name", "legacy_code", "observations",
    "street", "number", "complement", "neighborhood", "city", "reference",
]
DIGIT_FIELDS = ["cellphone", "phone1", "phone2", "cep"]

_BOOL_STRINGS = {"true": True, "false": False}


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _clean_file_meta(item: Any) -> Dict[str, Any]:
    if not isinstance(item, dict) or not _clean_text(item.get("filename")):
        return {}
    size = item.get("size")
    return {
        "filename": _clean_text(item.get("filename")),
        "content_type": _clean_text(item.get("content_type")) or "application/octet-stream",
        "size": size if isinstance(size, int) and size >= 0 else 0,
    }


def missing_required_fields(payload: Dict[str, Any]) -> List[str]:
    return [field for field in REQUIRED_FIELDS if payload.get(field) is None]


def form_options() -> Dict[str, Any]:
    """Opções de seleção e máscaras consumidas pelo frontend."""
    return {
        "genders": GENDERS,
        "other_doc_types": OTHER_DOC_TYPES,
        "ethnicities": ETHNICITIES,
        "marital_statuses": MARITAL_STATUSES,
        "states": STATES,
        "masks": {
            "cpf": "###.###.###-##",
            "cep": "#####-###",
            "cellphone": "(##) #####-####",
            "phone": "(##) ####-####",
        },
        "defaults": {"gender": "masculino", "is_newborn_in_plan": False, "attachments": []},
    }


def validate_patient_payload(payload: Dict[str, Any], today: date = None) -> Tuple[Dict[str, Any], Dict[str, str]]:
    """
    Valida e normaliza os dados do paciente.
    Parâmetros:
        payload (dict): dados enviados pelo formulário
        today (date, opcional): data de referência para a data de nascimento
    Retorno:
        tuple: (documento limpo, erros por campo). Erros vazios indicam payload válido.
    """
    today = today or date.today()
    doc: Dict[str, Any] = {}
    errors: Dict[str, str] = {}

    name = _clean_text(payload.get("name"))
    if len(name) < 2:
        errors["name"] = "Nome é obrigatório"
    doc["name"] = name

    # CPF: regra central do cadastro
    cpf = payload.get("cpf")
    if not CPFUtils.is_valid_cpf(cpf):
        errors["cpf"] = "CPF inválido"
    doc["cpf"] = CPFUtils.normalize_cpf(cpf)

    guardian_cpf = _clean_text(payload.get("guardian_cpf"))
    if guardian_cpf:
        if not CPFUtils.is_valid_cpf(guardian_cpf):
            errors["guardian_cpf"] = "CPF do responsável inválido"
        doc["guardian_cpf"] = CPFUtils.normalize_cpf(guardian_cpf)

    gender = _clean_text(payload.get("gender")).lower()
    if gender not in GENDERS:
        errors["gender"] = "Sexo deve ser masculino, feminino ou outro"
    doc["gender"] = gender

    raw_birth = _clean_text(payload.get("birth_date"))
    try:
        birth = date.fromisoformat(raw_birth)
    except ValueError:
        errors["birth_date"] = "Data de nascimento inválida (use AAAA-MM-DD)"
    else:
        if birth > today:
            errors["birth_date"] = "Data de nascimento não pode ser futura"
        doc["birth_date"] = birth.isoformat()

    for field, allowed, message in (
        ("other_doc_type", OTHER_DOC_TYPES, "Tipo de documento inválido"),
        ("ethnicity", ETHNICITIES, "Etnia inválida"),
        ("marital_status", MARITAL_STATUSES, "Estado civil inválido"),
    ):
        value = _clean_text(payload.get(field))
        if not value:
            continue
        if value not in allowed:
            errors[field] = message
        doc[field] = value

    for field in TEXT_FIELDS:
        value = _clean_text(payload.get(field))
        if value:
            doc[field] = value

    email = _clean_text(payload.get("email"))
    if email:
        try:
            doc["email"] = validate_email(email, check_deliverability=False).normalized
        except EmailNotValidError:
            errors["email"] = "Email inválido"
            doc["email"] = email

    for field in DIGIT_FIELDS:
        value = MaskUtils.only_digits(_clean_text(payload.get(field)))
        if value:
            doc[field] = value
    if "cep" in doc and len(doc["cep"]) != 8:
        errors["cep"] = "CEP deve ter 8 dígitos"

    state = _clean_text(payload.get("state")).upper()
    if state:
        if state not in STATES:
            errors["state"] = "UF inválida"
        doc["state"] = state

    newborn = payload.get("is_newborn_in_plan", False)
    if isinstance(newborn, str):
        newborn = _BOOL_STRINGS.get(newborn.strip().lower(), newborn)
    if newborn is None:
        newborn = False
    if not isinstance(newborn, bool):
        errors["is_newborn_in_plan"] = "Valor deve ser verdadeiro ou falso"
        newborn = False
    doc["is_newborn_in_plan"] = newborn

    attachments = payload.get("attachments") or []
    if not isinstance(attachments, list):
        errors["attachments"] = "Anexos devem ser uma lista"
        attachments = []
    doc["attachments"] = [meta for meta in (_clean_file_meta(a) for a in attachments) if meta]

    photo = _clean_file_meta(payload.get("photo"))
    if photo:
        doc["photo"] = photo

    return doc, errors
