from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
import logging
import os


# ====== Conexão MongoDB (motor) ======
_mongo_client: Optional[AsyncIOMotorClient] = None
_mongo_db: Optional[AsyncIOMotorDatabase] = None

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "patient_intake_db")

INTAKES_COLLECTION = "patient_intakes"
PATIENTS_COLLECTION = "patients"

logger = logging.getLogger(__name__)


async def connect_to_mongo() -> None:
	global _mongo_client, _mongo_db
	if _mongo_client is None:
		_mongo_client = AsyncIOMotorClient(MONGO_URI)
		_mongo_db = _mongo_client[MONGO_DB_NAME]
		logger.info(f"MongoDB conectado: db={MONGO_DB_NAME}")

async def close_mongo_connection() -> None:
	global _mongo_client, _mongo_db
	if _mongo_client is not None:
		_mongo_client.close()
		_mongo_client = None
		_mongo_db = None

async def ensure_indexes() -> None:
	"""
	Cria os índices usados pelo cadastro.
	Um paciente por CPF; intakes consultadas por status.
	"""
	await get_collection(PATIENTS_COLLECTION).create_index("cpf", unique=True)
	await get_collection(INTAKES_COLLECTION).create_index("status")

def get_db() -> AsyncIOMotorDatabase:
	if _mongo_db is None:
		raise RuntimeError("MongoDB nao inicializado. Chame connect_to_mongo no startup da API.")
	return _mongo_db

def get_collection(name: str) -> AsyncIOMotorCollection:
	return get_db()[name]
