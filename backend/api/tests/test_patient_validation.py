from datetime import date

from backend.api.services.patient_validation import (
    validate_patient_payload,
    missing_required_fields,
    form_options,
)

TODAY = date(2024, 6, 1)


def base_payload(**overrides):
    payload = {
        "name": "  Maria da Silva ",
        "cpf": "529.982.247-25",
        "gender": "feminino",
        "birth_date": "1990-05-17",
    }
    payload.update(overrides)
    return payload


def test_minimal_payload_is_valid_and_normalized():
    doc, errors = validate_patient_payload(base_payload(), today=TODAY)
    assert errors == {}
    assert doc["name"] == "Maria da Silva"
    assert doc["cpf"] == "52998224725"
    assert doc["birth_date"] == "1990-05-17"
    assert doc["is_newborn_in_plan"] is False
    assert doc["attachments"] == []
    assert "email" not in doc


def test_invalid_cpf_is_reported():
    _, errors = validate_patient_payload(base_payload(cpf="111.111.111-11"), today=TODAY)
    assert errors == {"cpf": "CPF inválido"}


def test_short_name():
    _, errors = validate_patient_payload(base_payload(name=" A "), today=TODAY)
    assert errors["name"] == "Nome é obrigatório"


def test_gender_enum_and_birth_date_rules():
    _, errors = validate_patient_payload(base_payload(gender="x", birth_date="2030-01-01"), today=TODAY)
    assert set(errors) == {"gender", "birth_date"}
    _, errors = validate_patient_payload(base_payload(birth_date="17/05/1990"), today=TODAY)
    assert "birth_date" in errors


def test_optional_fields():
    doc, errors = validate_patient_payload(base_payload(
        email="Maria@Exemplo.com",
        cellphone="(11) 98765-4321",
        cep="01001-000",
        state="sp",
        ethnicity="parda",
        marital_status="uniao_estavel",
        other_doc_type="cnh",
        guardian_cpf="097.024.144-58",
        social_name="",
        is_newborn_in_plan=True,
    ), today=TODAY)
    assert errors == {}
    assert doc["email"] == "Maria@exemplo.com"
    assert doc["cellphone"] == "11987654321"
    assert doc["cep"] == "01001000"
    assert doc["state"] == "SP"
    assert doc["guardian_cpf"] == "09702414458"
    assert doc["is_newborn_in_plan"] is True
    assert "social_name" not in doc


def test_optional_field_errors():
    _, errors = validate_patient_payload(base_payload(
        email="nao-e-email",
        cep="0100",
        state="XX",
        ethnicity="azul",
        guardian_cpf="123",
    ), today=TODAY)
    assert set(errors) == {"email", "cep", "state", "ethnicity", "guardian_cpf"}


def test_empty_email_is_allowed():
    _, errors = validate_patient_payload(base_payload(email=""), today=TODAY)
    assert errors == {}


def test_attachments_metadata():
    doc, errors = validate_patient_payload(base_payload(
        attachments=[
            {"filename": "exame.pdf", "content_type": "application/pdf", "size": 2048},
            {"filename": ""},
            "lixo",
        ],
        photo={"filename": "foto.png", "content_type": "image/png", "size": 10},
    ), today=TODAY)
    assert errors == {}
    assert doc["attachments"] == [{"filename": "exame.pdf", "content_type": "application/pdf", "size": 2048}]
    assert doc["photo"]["filename"] == "foto.png"

    _, errors = validate_patient_payload(base_payload(attachments="exame.pdf"), today=TODAY)
    assert "attachments" in errors


def test_missing_required_fields():
    assert missing_required_fields({"name": "Ana"}) == ["cpf", "gender", "birth_date"]
    assert missing_required_fields(base_payload()) == []


def test_form_options():
    options = form_options()
    assert list(options["genders"]) == ["masculino", "feminino", "outro"]
    assert options["masks"]["cpf"] == "###.###.###-##"
    assert "SP" in options["states"]


def test_email_rules_follow_email_validator():
    for bad in ("ana@exemplo..com", "ana@", "ana exemplo@exemplo.com", "@exemplo.com"):
        _, errors = validate_patient_payload(base_payload(email=bad), today=TODAY)
        assert errors.get("email") == "Email inválido", bad
    doc, errors = validate_patient_payload(base_payload(email=" ana.souza+clinica@exemplo.com.br "), today=TODAY)
    assert errors == {}
    assert doc["email"] == "ana.souza+clinica@exemplo.com.br"


def test_newborn_flag_accepts_only_booleans():
    doc, errors = validate_patient_payload(base_payload(is_newborn_in_plan="false"), today=TODAY)
    assert errors == {}
    assert doc["is_newborn_in_plan"] is False
    doc, _ = validate_patient_payload(base_payload(is_newborn_in_plan="True"), today=TODAY)
    assert doc["is_newborn_in_plan"] is True
    doc, errors = validate_patient_payload(base_payload(is_newborn_in_plan=None), today=TODAY)
    assert errors == {}
    assert doc["is_newborn_in_plan"] is False
    for bad in ("sim", 1, 0, []):
        _, errors = validate_patient_payload(base_payload(is_newborn_in_plan=bad), today=TODAY)
        assert "is_newborn_in_plan" in errors, bad
