import asyncio
import json
import os
import logging
from datetime import datetime, timezone

from bson import ObjectId
import redis.asyncio as redis
from pymongo.errors import DuplicateKeyError
from backend.mongo.db import connect_to_mongo, close_mongo_connection, ensure_indexes, get_collection, INTAKES_COLLECTION, PATIENTS_COLLECTION
from backend.api.services.patient_validation import validate_patient_payload
from backend.utils.cpf_utils import CPFUtils

LOG = logging.getLogger("consumer_intake")
LOG.setLevel(logging.INFO)
handler = logging.StreamHandler()
handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
LOG.addHandler(handler)

REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")
QUEUE_KEY = os.getenv("PATIENT_INTAKE_QUEUE", "patient_intakes_queue")
DLQ_KEY = os.getenv("PATIENT_INTAKE_DLQ", "patient_intakes_dlq")

# Campos de controle da solicitação que não fazem parte do paciente
INTAKE_CONTROL_FIELDS = {"_id", "status", "reason", "created_at", "updated_at", "processed_at", "patient_id"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ------------------- Classe principal do worker -------------------
class IntakeProcessor:
    def __init__(self, queue_key, dlq_key, logger):
        """
        Inicializa o processador de solicitações de cadastro.
        Parâmetros:
            queue_key (str): Nome da fila principal
            dlq_key (str): Nome da fila de dead-letter
            logger (logging.Logger): Logger para logs
        """
        self.logger = logger
        self.queue_key = queue_key
        self.dlq_key = dlq_key

    async def _update_intake_status(self, intake_id, coll, status, extra=None):
        """
        Atualiza status da solicitação no banco.
        Parâmetros:
            intake_id (str): ID da solicitação
            coll: Coleção MongoDB de solicitações
            status (str): Novo status
            extra (dict, opcional): Campos extras para atualizar
        """
        update = {"status": status, "updated_at": utcnow()}
        if extra:
            update.update(extra)
        await coll.update_one({"_id": ObjectId(intake_id)}, {"$set": update})
        self.logger.info(f"Status atualizado: intake_id={intake_id}, status={status}")

    async def _claim_intake(self, intake_id, coll):
        """
        Marca a solicitação como processing numa única operação atômica.
        Só solicitações com status queued (ou sem status) podem ser reivindicadas.
        Retorno:
            dict ou None: documento anterior à atualização, ou None se não houver o que processar
        """
        intake = await coll.find_one_and_update(
            {"_id": ObjectId(intake_id), "status": {"$in": ["queued", None]}},
            {"$set": {"status": "processing", "updated_at": utcnow()}},
        )
        if intake:
            self.logger.info(f"Status atualizado: intake_id={intake_id}, status=processing")
            return intake
        current = await coll.find_one({"_id": ObjectId(intake_id)})
        if not current:
            self.logger.warning(f"Solicitação não encontrada: {intake_id}")
        else:
            self.logger.info(f"Solicitação {intake_id} já processada (status={current.get('status')}), pulando")
        return None

    async def _reject(self, intake_id, coll, reason):
        await self._update_intake_status(intake_id, coll, "rejected", {"reason": reason})
        self.logger.warning(f"Solicitação rejeitada: intake_id={intake_id}, motivo={reason}")
        return reason

    async def _validate_intake(self, intake_id, intake, coll):
        """
        Revalida o documento salvo e verifica duplicidade de CPF.
        Retorno:
            tuple: (documento do paciente, motivo de rejeição ou None)
        """
        payload = {k: v for k, v in intake.items() if k not in INTAKE_CONTROL_FIELDS}
        doc, errors = validate_patient_payload(payload)
        if "cpf" in errors:
            return doc, await self._reject(intake_id, coll, "cpf_invalido")
        if errors:
            return doc, await self._reject(intake_id, coll, "dados_invalidos")
        if await get_collection(PATIENTS_COLLECTION).find_one({"cpf": doc["cpf"]}):
            return doc, await self._reject(intake_id, coll, "cpf_duplicado")
        return doc, None

    async def _persist_patient(self, intake_id, doc):
        """
        Persiste o paciente vinculado à solicitação.
        Retorno:
            ObjectId: ID do paciente criado
        """
        patients = get_collection(PATIENTS_COLLECTION)
        patient_doc = dict(doc, intake_id=intake_id, created_at=utcnow())
        res = await patients.insert_one(patient_doc)
        self.logger.info(f"Paciente criado: patient_id={res.inserted_id}, cpf={CPFUtils.mask_for_log(doc['cpf'])}")
        return res.inserted_id

    async def _handle_processing_error(self, intake_id, coll, r, msg, exc):
        """
        Lida com erro de processamento, atualiza status e envia para DLQ.
        """
        self.logger.error(f"Erro ao processar mensagem: intake_id={intake_id}, erro={exc!r}")
        try:
            if intake_id and coll is not None:
                await self._update_intake_status(intake_id, coll, "failed", {"reason": "processing_error"})
        except Exception:
            self.logger.exception(f"Erro ao marcar solicitação como failed: intake_id={intake_id}")
        try:
            await r.rpush(self.dlq_key, msg)
        except Exception:
            self.logger.exception("Erro ao empurrar para DLQ")

    async def process_message(self, msg: str, r: redis.Redis) -> None:
        """
        Processa uma mensagem da fila de cadastro.
        Parâmetros:
            msg (str): Mensagem JSON com intake_id
            r: Instância Redis (usada para a DLQ)
        """
        intake_id = None
        coll = None
        try:
            data = json.loads(msg)
            intake_id = data.get("intake_id")
            if not intake_id or not ObjectId.is_valid(intake_id):
                self.logger.warning(f"Mensagem sem intake_id válido: {data}")
                return

            coll = get_collection(INTAKES_COLLECTION)
            intake = await self._claim_intake(intake_id, coll)
            if not intake:
                return

            doc, motivo_rejeicao = await self._validate_intake(intake_id, intake, coll)
            if motivo_rejeicao:
                return

            try:
                patient_id = await self._persist_patient(intake_id, doc)
            except DuplicateKeyError:
                # Outro worker criou o mesmo CPF entre a verificação e a inserção
                await self._reject(intake_id, coll, "cpf_duplicado")
                return

            await self._update_intake_status(
                intake_id,
                coll,
                "completed",
                {"patient_id": patient_id, "processed_at": utcnow()}
            )
            self.logger.info(f"Solicitação {intake_id} processada com sucesso, patient_id={patient_id}")

        except Exception as exc:
            await self._handle_processing_error(intake_id, coll, r, msg, exc)


####################
async def main() -> None:
    """
    Loop principal do worker. Conecta aos serviços, consome a fila e processa as solicitações.
    """
    LOG.info("Conectando ao MongoDB e Redis...")
    await connect_to_mongo()
    await ensure_indexes()
    r = redis.from_url(REDIS_URL)
    processor = IntakeProcessor(QUEUE_KEY, DLQ_KEY, LOG)
    try:
        while True:
            try:
                item = await r.brpop([QUEUE_KEY], timeout=5)
                if not item:
                    continue
                # item é uma tupla (key, value)
                _, value = item
                if isinstance(value, bytes):
                    value = value.decode()
                await processor.process_message(value, r)
            except asyncio.CancelledError:
                raise
            except Exception:
                LOG.exception("Erro no loop do consumer")
                await asyncio.sleep(1)
    finally:
        await r.aclose()
        await close_mongo_connection()


####################-----------------------------####################

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        LOG.info("Worker finalizado pelo usuário")
