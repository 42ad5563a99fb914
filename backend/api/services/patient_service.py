"""
Serviço de cadastro de pacientes: encapsula validação, persistência da solicitação e mensageria.
A criação do paciente em si é feita pelo worker (backend/worker/consumer_intake.py).
"""
from typing import Any, Callable, Dict, List, Optional
from fastapi import HTTPException
from bson import ObjectId
from datetime import datetime, timezone
import redis.asyncio as redis
import json
import logging

from backend.mongo.db import get_collection, INTAKES_COLLECTION, PATIENTS_COLLECTION
from backend.api.services.patient_validation import validate_patient_payload, missing_required_fields, REQUIRED_FIELDS
from backend.utils.cpf_utils import CPFUtils

MAX_LIST_LIMIT = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_json_safe(val: Any) -> Any:
    """Converte ObjectId/datetime (recursivamente) para tipos serializáveis em JSON."""
    if isinstance(val, dict):
        return {k: to_json_safe(v) for k, v in val.items()}
    elif isinstance(val, list):
        return [to_json_safe(v) for v in val]
    elif isinstance(val, ObjectId):
        return str(val)
    elif isinstance(val, datetime):
        return val.isoformat()
    else:
        return val


def parse_object_id(value: str, field: str) -> ObjectId:
    if not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail=f"{field} inválido")
    return ObjectId(value)


class PatientIntakeService:
    def __init__(self, redis_url: str, queue_key: str, logger=None, redis_factory: Optional[Callable[[str], Any]] = None):
        """
        Inicializa o serviço de cadastro.
        Parâmetros:
            redis_url (str): URL do Redis
            queue_key (str): Nome da fila de solicitações de cadastro
            logger (logging.Logger, opcional): Logger para logs
            redis_factory (callable, opcional): cria o cliente Redis a partir da URL
        """
        self.redis_url = redis_url
        self.queue_key = queue_key
        self.redis_factory = redis_factory or redis.from_url
        if logger is None:
            logger = logging.getLogger("patient_service")
            logger.setLevel(logging.INFO)
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
            if not logger.hasHandlers():
                logger.addHandler(handler)
        self.logger = logger

    async def _enqueue(self, message: Dict[str, Any]) -> None:
        r = self.redis_factory(self.redis_url)
        try:
            await r.rpush(self.queue_key, json.dumps(message))
        finally:
            await r.aclose()

    async def request_intake(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Recebe o formulário: valida, persiste a solicitação e enfileira no Redis.
        Parâmetros:
            payload (dict): dados do paciente
        Retorno:
            dict: id da solicitação e status
        """
        if not isinstance(payload, dict) or missing_required_fields(payload):
            self.logger.warning("Payload de cadastro incompleto")
            raise HTTPException(status_code=400, detail=f"Campos obrigatórios: {', '.join(REQUIRED_FIELDS)}")

        doc, errors = validate_patient_payload(payload)
        if errors:
            self.logger.warning(f"Cadastro rejeitado na validação: campos={sorted(errors)}")
            raise HTTPException(status_code=422, detail={"message": "Dados inválidos", "errors": errors})

        cpf_log = CPFUtils.mask_for_log(doc["cpf"])
        patients = get_collection(PATIENTS_COLLECTION)
        if await patients.find_one({"cpf": doc["cpf"]}):
            self.logger.warning(f"Paciente já cadastrado: cpf={cpf_log}")
            raise HTTPException(status_code=409, detail="Paciente já cadastrado para este CPF")

        # Persistência da solicitação
        coll = get_collection(INTAKES_COLLECTION)
        now = utcnow()
        intake = dict(doc, status="queued", created_at=now, updated_at=now)
        res = await coll.insert_one(intake)
        intake_id = str(res.inserted_id)
        self.logger.info(f"Solicitação de cadastro criada: intake_id={intake_id}, cpf={cpf_log}")

        # Mensageria: enfileira a solicitação no Redis
        msg = {"intake_id": intake_id, "cpf": doc["cpf"], "created_at": now.isoformat()}
        try:
            await self._enqueue(msg)
            self.logger.info(f"Solicitação enfileirada no Redis: intake_id={intake_id}")
        except Exception:
            self.logger.exception(f"Erro ao enfileirar solicitação: intake_id={intake_id}")
            await coll.update_one({"_id": res.inserted_id}, {"$set": {"status": "failed", "updated_at": utcnow(), "reason": "enqueue_error"}})
            raise HTTPException(status_code=500, detail="Erro ao enfileirar a solicitação")

        return {"intake_id": intake_id, "status": "queued"}

    async def get_intake(self, intake_id: str) -> Dict[str, Any]:
        obj_id = parse_object_id(intake_id, "intake_id")
        intake = await get_collection(INTAKES_COLLECTION).find_one({"_id": obj_id})
        if not intake:
            self.logger.warning(f"Solicitação não encontrada: intake_id={intake_id}")
            raise HTTPException(status_code=404, detail="Solicitação não encontrada")
        result = to_json_safe(intake)
        result["intake_id"] = result.pop("_id")
        return result

    async def get_patient(self, patient_id: str) -> Dict[str, Any]:
        obj_id = parse_object_id(patient_id, "patient_id")
        patient = await get_collection(PATIENTS_COLLECTION).find_one({"_id": obj_id})
        if not patient:
            self.logger.warning(f"Paciente não encontrado: patient_id={patient_id}")
            raise HTTPException(status_code=404, detail="Paciente não encontrado")
        result = to_json_safe(patient)
        result["patient_id"] = result.pop("_id")
        return result

    async def find_patient_by_cpf(self, cpf: str) -> Dict[str, Any]:
        if not CPFUtils.is_valid_cpf(cpf):
            raise HTTPException(status_code=422, detail="CPF inválido")
        patient = await get_collection(PATIENTS_COLLECTION).find_one({"cpf": CPFUtils.normalize_cpf(cpf)})
        if not patient:
            raise HTTPException(status_code=404, detail="Paciente não encontrado")
        result = to_json_safe(patient)
        result["patient_id"] = result.pop("_id")
        return result

    async def list_patients(self, limit: int = 20) -> List[Dict[str, Any]]:
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        items: List[Dict[str, Any]] = []
        async for doc in get_collection(PATIENTS_COLLECTION).find().sort("created_at", -1).limit(limit):
            item = to_json_safe(doc)
            item["patient_id"] = item.pop("_id")
            items.append(item)
        self.logger.info(f"Listando pacientes: total={len(items)}")
        return items
