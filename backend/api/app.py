from typing import List, Dict, Any, Optional
from fastapi import FastAPI, status, Depends, Path, Query
import logging
import uvicorn
from backend.mongo.db import connect_to_mongo, close_mongo_connection, ensure_indexes
from backend.auth.basic import basic_auth
from backend.api.services.patient_service import PatientIntakeService
from backend.api.services.patient_validation import form_options
from backend.api.services.cep_service import CepService
from backend.utils.cpf_utils import CPFUtils
import os

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")
QUEUE_KEY = os.getenv("PATIENT_INTAKE_QUEUE", "patient_intakes_queue")
VIACEP_URL = os.getenv("VIACEP_URL", "https://viacep.com.br/ws")
CEP_TIMEOUT = float(os.getenv("CEP_TIMEOUT", "5"))
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "3000"))

app = FastAPI(title="Patient Intake API", version="1.0.0")

intake_service = PatientIntakeService(REDIS_URL, QUEUE_KEY)
cep_service = CepService(VIACEP_URL, timeout=CEP_TIMEOUT)


# Conexão MongoDB no ciclo de vida da aplicação
@app.on_event("startup")
async def on_startup() -> None:
    """
    Evento de inicialização da API.
    Conecta ao MongoDB e garante os índices.
    """
    logger.info("Iniciando evento de startup da API")
    await connect_to_mongo()
    await ensure_indexes()
    logger.info("Conexão com MongoDB estabelecida")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    logger.info("Iniciando evento de shutdown da API")
    await close_mongo_connection()
    logger.info("Conexão com MongoDB encerrada")


@app.get("/")
async def root(_: str = Depends(basic_auth)) -> dict:
    """
    Endpoint de status da API (usado também pelo login do frontend).
    Parâmetros:
        _: autenticação básica
    Retorno:
        dict: status da API
    """
    return {"status": "ok"}


#########
@app.get("/api/v1/form-options")
async def get_form_options(_: str = Depends(basic_auth)) -> Dict[str, Any]:
    return form_options()


#########
@app.post("/api/v1/cpf/validate")
async def validate_cpf(payload: Dict[str, Any], _: str = Depends(basic_auth)) -> Dict[str, Any]:
    """
    Valida um CPF sem persistir nada.
    Parâmetros:
        payload (dict): {"cpf": "..."}
        _: autenticação básica
    Retorno:
        dict: cpf normalizado, resultado e CPF formatado
    """
    raw = payload.get("cpf")
    valid = CPFUtils.is_valid_cpf(raw)
    logger.info(f"Validação de CPF: cpf={CPFUtils.mask_for_log(raw)}, valid={valid}")
    return {"cpf": CPFUtils.normalize_cpf(raw), "valid": valid, "formatted": CPFUtils.format_cpf(raw) if valid else None}


#########
@app.get("/api/v1/cep/{cep}")
async def lookup_cep(cep: str = Path(..., description="CEP com ou sem máscara"), _: str = Depends(basic_auth)) -> Dict[str, Any]:
    """
    Consulta o endereço de um CEP para preenchimento automático.
    Parâmetros:
        cep (str): CEP
        _: autenticação básica
    Retorno:
        dict: endereço
    """
    logger.info(f"Consulta de CEP: cep={cep}")
    return await cep_service.lookup(cep)


######### Pacientes
@app.post("/api/v1/patients", status_code=status.HTTP_201_CREATED)
async def create_patient(payload: Dict[str, Any], _: str = Depends(basic_auth)) -> Dict[str, Any]:
    """
    Endpoint de cadastro. Valida dados, persiste a solicitação e enfileira no Redis.
    Parâmetros:
        payload (dict): dados do paciente
        _: autenticação básica
    Retorno:
        dict: id e status da solicitação
    """
    result = await intake_service.request_intake(payload)
    logger.info(f"Cadastro processado: retorno={result}")
    return result


#########
@app.get("/api/v1/patients")
async def list_patients(
    cpf: Optional[str] = Query(None, description="Filtra pelo CPF"),
    limit: int = Query(20, ge=1, le=100),
    _: str = Depends(basic_auth),
) -> List[Dict[str, Any]]:
    if cpf:
        return [await intake_service.find_patient_by_cpf(cpf)]
    return await intake_service.list_patients(limit)


#########
@app.get("/api/v1/patients/{patient_id}")
async def get_patient(patient_id: str = Path(..., description="ID do paciente"), _: str = Depends(basic_auth)) -> Dict[str, Any]:
    return await intake_service.get_patient(patient_id)


#########
# Endpoint para consultar status da solicitação de cadastro
@app.get("/api/v1/intakes/{intake_id}")
async def get_intake_status(intake_id: str = Path(..., description="ID da solicitação"), _: str = Depends(basic_auth)) -> Dict[str, Any]:
    """
    Consulta status de uma solicitação de cadastro.
    Parâmetros:
        intake_id (str): ID da solicitação
        _: autenticação básica
    Retorno:
        dict: dados da solicitação
    """
    logger.info(f"Consulta de status: intake_id={intake_id}")
    return await intake_service.get_intake(intake_id)


######### ------------------------------ #########
if __name__ == "__main__":
    """
    Inicializa o servidor Uvicorn para rodar a API.
    """
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    logger.info(f"Starting Uvicorn server on {API_HOST}:{API_PORT}")
    uvicorn.run(app, host=API_HOST, port=API_PORT)
