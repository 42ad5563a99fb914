from datetime import date
from types import SimpleNamespace

from frontend import form_state as fs


def fresh_state():
    state = {}
    fs.init_state(state)
    return state


def test_init_state_defaults():
    state = fresh_state()
    assert state["f_gender"] == "masculino"
    assert state["f_is_newborn_in_plan"] is False
    assert state["sections"] == {"personal_data": True, "observations": False, "contact": True, "address": True}
    assert state["attachments"] == []


def test_init_state_keeps_existing_values():
    state = {"f_name": "Ana"}
    fs.init_state(state)
    assert state["f_name"] == "Ana"


def test_toggle_section():
    state = fresh_state()
    fs.toggle_section(state, "observations")
    assert state["sections"]["observations"] is True
    fs.toggle_section(state, "personal_data")
    assert state["sections"]["personal_data"] is False


def test_attachments_add_and_remove():
    state = fresh_state()
    exame = SimpleNamespace(name="exame.pdf", type="application/pdf", size=2048)
    foto = SimpleNamespace(name="raio-x.png", type=None, size=10)
    fs.add_attachments(state, [exame, foto])
    fs.add_attachments(state, [exame])  # o uploader reenvia os mesmos arquivos a cada execução
    assert [a["filename"] for a in state["attachments"]] == ["exame.pdf", "raio-x.png"]
    assert state["attachments"][1]["content_type"] == "application/octet-stream"

    fs.remove_attachment(state, 0)
    fs.remove_attachment(state, 5)
    assert [a["filename"] for a in state["attachments"]] == ["raio-x.png"]


def test_cep_lookup_runs_once_per_value():
    state = fresh_state()
    assert fs.should_lookup_cep(state, "01001-00") is False
    assert fs.should_lookup_cep(state, "01001-000") is True
    fs.apply_address(state, "01001-000", {"street": "Praça da Sé", "neighborhood": "Sé", "city": "São Paulo", "state": "SP", "complement": ""})
    assert fs.should_lookup_cep(state, "01001000") is False
    assert state["f_city"] == "São Paulo"
    assert state["f_complement"] == ""


def test_reset_form():
    state = fresh_state()
    state["f_name"] = "Ana"
    state["attachments"] = [{"filename": "a.pdf", "size": 1, "content_type": "application/pdf"}]
    state["last_cep"] = "01001000"
    fs.toggle_section(state, "contact")
    fs.reset_form(state)
    assert state["f_name"] == ""
    assert state["attachments"] == []
    assert state["last_cep"] == ""
    assert state["sections"]["contact"] is True
    assert state["uploader_version"] == 1


def test_keep_fields_reassigns_values():
    state = fresh_state()
    state["f_rg"] = "12.345.678-9"
    fs.keep_fields(state)
    assert state["f_rg"] == "12.345.678-9"


def test_build_payload_and_local_errors():
    state = fresh_state()
    state["f_name"] = "  Ana Souza "
    state["f_cpf"] = "529.982.247-25"
    state["f_birth_date"] = date(1990, 1, 31)
    state["photo"] = {"filename": "foto.png", "content_type": "image/png", "size": 3}
    payload = fs.build_payload(state)
    assert payload["name"] == "Ana Souza"
    assert payload["birth_date"] == "1990-01-31"
    assert payload["photo"]["filename"] == "foto.png"
    assert fs.local_errors(payload) == {}

    payload.update(cpf="111.111.111-11", guardian_cpf="123", birth_date=None, name="A")
    assert set(fs.local_errors(payload)) == {"name", "cpf", "guardian_cpf", "birth_date"}


def test_removed_attachment_stays_removed_while_in_uploader():
    state = fresh_state()
    exame = SimpleNamespace(name="exame.pdf", type="application/pdf", size=2048)
    fs.add_attachments(state, [exame])
    fs.remove_attachment(state, 0)
    fs.add_attachments(state, [exame])  # próxima execução: o arquivo continua no uploader
    assert state["attachments"] == []

    # Depois de sair do uploader, o mesmo arquivo pode ser anexado de novo
    fs.add_attachments(state, [])
    fs.add_attachments(state, [exame])
    assert [a["filename"] for a in state["attachments"]] == ["exame.pdf"]


def test_reset_form_clears_uploader_tracking():
    state = fresh_state()
    fs.add_attachments(state, [SimpleNamespace(name="a.pdf", type="application/pdf", size=1)])
    fs.reset_form(state)
    assert state["uploader_seen"] == []


OPTIONS = {"masks": {"cpf": "###.###.###-##", "cep": "#####-###", "cellphone": "(##) #####-####", "phone": "(##) ####-####"}}


def test_mask_hints_come_from_form_options():
    assert fs.placeholder("#####-###") == "00000-000"
    assert fs.mask_hint(OPTIONS, "cpf") == "000.000.000-00"
    assert fs.mask_hint(OPTIONS, "guardian_cpf") == "000.000.000-00"
    assert fs.mask_hint(OPTIONS, "cellphone") == "(00) 00000-0000"
    assert fs.mask_hint(OPTIONS, "phone2") == "(00) 0000-0000"
    assert fs.mask_hint({}, "cep") == ""


def test_apply_mask_formats_complete_values():
    state = fresh_state()
    state["f_cpf"] = " 52998224725 "
    state["f_cellphone"] = "11987654321"
    state["f_phone1"] = "1132654321"
    state["f_cep"] = "01001000"
    state["f_guardian_cpf"] = "0970241"
    for field in ("cpf", "cellphone", "phone1", "cep", "guardian_cpf"):
        fs.apply_mask(state, field)
    assert state["f_cpf"] == "529.982.247-25"
    assert state["f_cellphone"] == "(11) 98765-4321"
    assert state["f_phone1"] == "(11) 3265-4321"
    assert state["f_cep"] == "01001-000"
    # Incompleto: fica como digitado
    assert state["f_guardian_cpf"] == "0970241"


def test_cep_failure_allows_retry():
    state = fresh_state()
    fs.record_cep_result(state, "01001-000", False, 502, {"detail": "Serviço de CEP indisponível"})
    assert state["last_cep"] == ""
    assert fs.should_lookup_cep(state, "01001-000") is True
    fs.record_cep_result(state, "01001-000", False, 0, {"detail": "timeout"})
    assert fs.should_lookup_cep(state, "01001-000") is True


def test_cep_not_found_and_success_stop_automatic_lookup():
    state = fresh_state()
    fs.record_cep_result(state, "99999-999", False, 404, {"detail": "CEP não encontrado"})
    assert fs.should_lookup_cep(state, "99999999") is False

    fs.record_cep_result(state, "01001-000", True, 200, {"street": "Praça da Sé", "city": "São Paulo", "state": "SP"})
    assert state["last_cep"] == "01001000"
    assert state["f_street"] == "Praça da Sé"
    assert fs.should_lookup_cep(state, "01001-000") is False
