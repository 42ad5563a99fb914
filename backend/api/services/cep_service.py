"""
Consulta de endereço por CEP (ViaCEP) para o preenchimento automático do formulário.
"""
from typing import Any, Dict, Optional
import logging

import httpx
from fastapi import HTTPException

from backend.utils.mask_utils import MaskUtils


class CepService:
    def __init__(self, base_url: str, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None, logger=None):
        """
        Inicializa o serviço de CEP.
        Parâmetros:
            base_url (str): URL base da API (ex: https://viacep.com.br/ws)
            timeout (float): timeout da requisição em segundos
            transport (httpx.AsyncBaseTransport, opcional): transporte alternativo (testes)
            logger (logging.Logger, opcional): Logger para logs
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.logger = logger or logging.getLogger("cep_service")

    @staticmethod
    def _to_address(data: Dict[str, Any], cep: str) -> Dict[str, Any]:
        return {
            "cep": data.get("cep") or MaskUtils.format_cep(cep),
            "street": data.get("logradouro", ""),
            "complement": data.get("complemento", ""),
            "neighborhood": data.get("bairro", ""),
            "city": data.get("localidade", ""),
            "state": data.get("uf", ""),
        }

    async def lookup(self, cep: str) -> Dict[str, Any]:
        """
        Busca o endereço de um CEP.
        Parâmetros:
            cep (str): CEP com ou sem máscara
        Retorno:
            dict: endereço (cep, street, complement, neighborhood, city, state)
        """
        digits = MaskUtils.only_digits(cep)
        if len(digits) != 8:
            self.logger.warning(f"CEP inválido recebido: {cep}")
            raise HTTPException(status_code=400, detail="CEP inválido")

        url = f"{self.base_url}/{digits}/json/"
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                resp = await client.get(url)
        except httpx.HTTPError as exc:
            self.logger.error(f"Erro ao consultar CEP {digits}: {exc}")
            raise HTTPException(status_code=502, detail="Falha ao consultar CEP")

        if resp.status_code == 400:
            raise HTTPException(status_code=404, detail="CEP não encontrado")
        if resp.is_error:
            self.logger.error(f"Resposta inesperada do serviço de CEP: status={resp.status_code}")
            raise HTTPException(status_code=502, detail="Falha ao consultar CEP")
        try:
            data = resp.json()
        except ValueError:
            self.logger.error(f"Resposta não JSON do serviço de CEP para {digits}")
            raise HTTPException(status_code=502, detail="Falha ao consultar CEP")

        if not isinstance(data, dict) or data.get("erro"):
            self.logger.info(f"CEP não encontrado: {digits}")
            raise HTTPException(status_code=404, detail="CEP não encontrado")

        address = self._to_address(data, digits)
        self.logger.info(f"CEP encontrado: {digits} -> {address['city']}/{address['state']}")
        return address
