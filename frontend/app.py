import asyncio
from datetime import date
from typing import Any, Dict, Optional

import httpx
import streamlit as st

from frontend import form_state as fs
from frontend.api_client import (
    create_patient,
    error_detail,
    field_errors,
    get_form_options,
    get_intake_status,
    lookup_cep,
    validate_credentials,
)
from backend.utils.cpf_utils import CPFUtils
from backend.utils.mask_utils import MaskUtils

st.set_page_config(page_title="Cadastro de Paciente", page_icon="🩺", layout="centered")


def current_auth():
    return st.session_state.get("auth")


def logout():
    st.session_state.pop("auth", None)
    st.session_state.pop("options", None)


def select(label: str, field: str, choices: Dict[str, str]):
    """Selectbox com opção vazia ('Selecione') e rótulos amigáveis."""
    options = [""] + list(choices)
    return st.selectbox(label, options, key=fs.key(field), format_func=lambda v: choices.get(v, "Selecione"))


def show_error(field: str):
    msg = st.session_state.get("form_errors", {}).get(field)
    if msg:
        st.caption(f":red[{msg}]")


def section(title: str, name: str):
    expanded = st.session_state["sections"].get(name, False)
    st.button(
        f"{'▾' if expanded else '▸'} {title}",
        key=f"toggle_{name}",
        on_click=fs.toggle_section,
        args=(st.session_state, name),
        use_container_width=True,
    )
    return expanded


def remove_photo():
    st.session_state["photo"] = None
    st.session_state["photo_version"] = st.session_state.get("photo_version", 0) + 1


# -------------- UI Sections --------------
async def login_gate(client: httpx.AsyncClient) -> None:
    if "auth" in st.session_state:
        return
    st.subheader("🔐 Login")
    with st.form("login_form", clear_on_submit=False):
        user = st.text_input("Usuário", key="login_user")
        pwd = st.text_input("Senha", type="password", key="login_pwd")
        submitted = st.form_submit_button("Entrar")
        if submitted:
            if not user or not pwd:
                st.warning("Preencha usuário e senha.")
            elif await validate_credentials(client, user, pwd):
                st.session_state["auth"] = (user, pwd)
                st.rerun()
            else:
                st.error("Credenciais inválidas ou serviço indisponível.")
    st.stop()


def personal_data_section(options: Dict[str, Any]) -> None:
    # Foto
    photo_col, _ = st.columns([1, 2])
    with photo_col:
        photo = st.file_uploader(
            "Foto do paciente",
            type=["png", "jpg", "jpeg"],
            key=f"photo_upload_{st.session_state.get('photo_version', 0)}",
        )
        if photo is not None:
            st.session_state["photo"] = fs.file_meta(photo)
            st.image(photo, width=128)
            st.button("Remover foto", on_click=remove_photo)

    c1, c2 = st.columns(2)
    with c1:
        st.text_input("Nome *", key=fs.key("name"))
        show_error("name")
    with c2:
        st.text_input("Nome Social", key=fs.key("social_name"))

    c1, c2 = st.columns(2)
    with c1:
        st.text_input("CPF *", key=fs.key("cpf"), placeholder=fs.mask_hint(options, "cpf"), max_chars=14, on_change=fs.apply_mask, args=(st.session_state, "cpf"))
        cpf = st.session_state[fs.key("cpf")]
        if MaskUtils.only_digits(cpf) and not CPFUtils.is_valid_cpf(cpf):
            st.caption(":red[CPF inválido]")
        else:
            show_error("cpf")
    with c2:
        st.text_input("RG", key=fs.key("rg"))

    c1, c2 = st.columns(2)
    with c1:
        select("Outros Documentos", "other_doc_type", options["other_doc_types"])
    with c2:
        st.text_input("Número do Documento", key=fs.key("other_doc_number"))

    genders = options["genders"]
    st.radio("Sexo *", list(genders), key=fs.key("gender"), format_func=genders.get, horizontal=True)
    st.date_input(
        "Data de Nascimento *",
        key=fs.key("birth_date"),
        min_value=date(1900, 1, 1),
        max_value=date.today(),
        format="DD/MM/YYYY",
    )
    show_error("birth_date")

    c1, c2, c3 = st.columns(3)
    with c1:
        select("Etnia", "ethnicity", options["ethnicities"])
    with c2:
        st.text_input("Profissão", key=fs.key("profession"))
    with c3:
        select("Estado Civil", "marital_status", options["marital_statuses"])
    if st.session_state[fs.key("marital_status")] in ("casado", "uniao_estavel"):
        st.text_input("Nome do(a) Esposo(a)", key=fs.key("spouse_name"))

    c1, c2 = st.columns(2)
    with c1:
        st.text_input("Nome da Mãe", key=fs.key("mother_name"))
        st.text_input("Nome do Pai", key=fs.key("father_name"))
        st.text_input("Nome do Responsável", key=fs.key("guardian_name"))
    with c2:
        st.text_input("Profissão da Mãe", key=fs.key("mother_profession"))
        st.text_input("Profissão do Pai", key=fs.key("father_profession"))
        st.text_input("CPF do Responsável", key=fs.key("guardian_cpf"), placeholder=fs.mask_hint(options, "guardian_cpf"), max_chars=14, on_change=fs.apply_mask, args=(st.session_state, "guardian_cpf"))
        show_error("guardian_cpf")

    c1, c2 = st.columns(2)
    with c1:
        st.text_input("Local de Nascimento", key=fs.key("birth_place"))
    with c2:
        st.text_input("Nacionalidade", key=fs.key("nationality"), placeholder="Brasileira")

    st.toggle("Recém-nascido inscrito no plano", key=fs.key("is_newborn_in_plan"))
    st.text_input("Código do Sistema Anterior", key=fs.key("legacy_code"))


def observations_section() -> None:
    st.text_area(
        "Observações",
        key=fs.key("observations"),
        placeholder="Adicione observações importantes sobre o paciente...",
    )
    files = st.file_uploader(
        "Anexos",
        accept_multiple_files=True,
        key=f"attachments_upload_{st.session_state['uploader_version']}",
    )
    # Chamado também com o uploader vazio, para liberar arquivos que saíram dele
    fs.add_attachments(st.session_state, files)
    attachments = st.session_state["attachments"]
    if attachments:
        st.markdown("**Arquivos Anexados:**")
        for i, att in enumerate(attachments):
            c1, c2 = st.columns([4, 1])
            c1.write(f"📄 {att['filename']} ({att['size'] / 1024:.1f} KB)")
            c2.button("Remover", key=f"rm_att_{i}", on_click=fs.remove_attachment, args=(st.session_state, i))


def contact_section(options: Dict[str, Any]) -> None:
    st.text_input("Email", key=fs.key("email"), placeholder="email@exemplo.com")
    show_error("email")
    c1, c2, c3 = st.columns(3)
    with c1:
        st.text_input("Celular", key=fs.key("cellphone"), placeholder=fs.mask_hint(options, "cellphone"), max_chars=15, on_change=fs.apply_mask, args=(st.session_state, "cellphone"))
    with c2:
        st.text_input("Telefone 1", key=fs.key("phone1"), placeholder=fs.mask_hint(options, "phone1"), max_chars=14, on_change=fs.apply_mask, args=(st.session_state, "phone1"))
    with c3:
        st.text_input("Telefone 2", key=fs.key("phone2"), placeholder=fs.mask_hint(options, "phone2"), max_chars=14, on_change=fs.apply_mask, args=(st.session_state, "phone2"))


async def address_section(client: httpx.AsyncClient, options: Dict[str, Any]) -> None:
    c1, c2 = st.columns([3, 1], vertical_alignment="bottom")
    with c1:
        st.text_input("CEP", key=fs.key("cep"), placeholder=fs.mask_hint(options, "cep"), max_chars=9, on_change=fs.apply_mask, args=(st.session_state, "cep"))
    with c2:
        search = st.button("🔍 Buscar", key="search_cep")
    cep = st.session_state[fs.key("cep")]
    # Preenche o endereço antes de renderizar os campos dependentes
    if (search and MaskUtils.is_complete_cep(cep)) or fs.should_lookup_cep(st.session_state, cep):
        with st.spinner("Buscando CEP..."):
            ok, data, status = await lookup_cep(client, MaskUtils.only_digits(cep), current_auth())
        fs.record_cep_result(st.session_state, cep, ok, status, data)
        if not ok:
            st.caption(f":orange[Não foi possível buscar o CEP ({status}): {error_detail(data)}]")
    elif search:
        st.caption(":orange[Informe um CEP com 8 dígitos]")
    show_error("cep")

    c1, c2 = st.columns([3, 1])
    with c1:
        st.text_input("Rua/Logradouro", key=fs.key("street"))
    with c2:
        st.text_input("Número", key=fs.key("number"))
    c1, c2 = st.columns(2)
    with c1:
        st.text_input("Complemento", key=fs.key("complement"))
    with c2:
        st.text_input("Bairro", key=fs.key("neighborhood"))
    c1, c2 = st.columns([3, 1])
    with c1:
        st.text_input("Cidade", key=fs.key("city"))
    with c2:
        states = {uf: uf for uf in options["states"]}
        select("Estado", "state", states)
    st.text_input("Ponto de Referência", key=fs.key("reference"), placeholder="Ex: Próximo ao mercado...")


async def submit(client: httpx.AsyncClient) -> None:
    payload = fs.build_payload(st.session_state)
    errors = fs.local_errors(payload)
    if errors:
        st.session_state["form_errors"] = errors
        st.rerun()
    ok, data, status = await create_patient(client, payload, current_auth())
    if ok:
        st.session_state["form_errors"] = {}
        st.session_state["last_intake"] = data.get("intake_id")
        st.success(f"Cadastro enviado. Solicitação: {data.get('intake_id')}")
        return
    st.session_state["form_errors"] = field_errors(data)
    detail = error_detail(data)
    if status == 409:
        st.error(f"Paciente já cadastrado: {detail}")
    elif status == 422:
        st.error(f"Validação rejeitada: {detail}")
    elif status == 400:
        st.error(f"Dados inválidos: {detail}")
    else:
        st.error(f"Erro ({status}): {detail}")


async def intake_status_box(client: httpx.AsyncClient) -> None:
    intake_id: Optional[str] = st.session_state.get("last_intake")
    if not intake_id:
        return
    with st.expander("Status do cadastro", expanded=True):
        if st.button("Consultar status"):
            ok, data, status = await get_intake_status(client, intake_id, current_auth())
            if ok:
                st.write(f"Status: **{data.get('status')}**")
                if data.get("reason"):
                    st.write(f"Motivo: {data['reason']}")
                if data.get("patient_id"):
                    st.write(f"Paciente: {data['patient_id']}")
            else:
                st.error(f"Erro ({status}): {error_detail(data)}")


async def main_ui():
    st.title("🩺 Cadastro de Paciente")
    st.caption("Preencha os dados do paciente com atenção")

    async with httpx.AsyncClient() as client:
        await login_gate(client)
        st.sidebar.markdown(f"**Usuário:** {current_auth()[0]}")
        st.sidebar.button("Sair", on_click=logout)

        if "options" not in st.session_state:
            ok, data, status = await get_form_options(client, current_auth())
            if not ok:
                st.error(f"Erro ao carregar opções do formulário ({status}): {error_detail(data)}")
                st.stop()
            st.session_state["options"] = data
        options = st.session_state["options"]
        fs.init_state(st.session_state)
        fs.keep_fields(st.session_state)

        if section("Dados Pessoais", "personal_data"):
            personal_data_section(options)
        if section("Observações e Anexos", "observations"):
            observations_section()
        if section("Contato", "contact"):
            contact_section(options)
        if section("Endereço", "address"):
            await address_section(client, options)

        st.divider()
        c1, c2 = st.columns(2)
        with c1:
            st.button("Limpar", on_click=fs.reset_form, args=(st.session_state,), use_container_width=True)
        with c2:
            if st.button("💾 Salvar Paciente", type="primary", use_container_width=True):
                await submit(client)
        await intake_status_box(client)


asyncio.run(main_ui())
