"""
Módulo utilitário para validação, normalização e formatação de CPF.
Funções puras e sem estado: podem ser chamadas de qualquer lugar (API, worker, frontend).
"""
import re

_NON_DIGITS = re.compile(r'[^0-9]')


class CPFUtils:
    @staticmethod
    def normalize_cpf(cpf: str) -> str:
        """
        Remove caracteres não numéricos do CPF.
        Parâmetros:
            cpf (str): CPF em qualquer formato
        Retorno:
            str: CPF apenas com dígitos (vazio se a entrada não for texto)
        Exemplo: '529.982.247-25' -> '52998224725'
        """
        if not isinstance(cpf, str):
            return ""
        return _NON_DIGITS.sub('', cpf)

    @staticmethod
    def is_valid_cpf(cpf: str) -> bool:
        """
        Valida CPF pelo algoritmo dos dígitos verificadores (módulo 11).
        Parâmetros:
            cpf (str): CPF com ou sem máscara
        Retorno:
            bool: True se válido, False caso contrário (nunca lança exceção)
        """
        digits = CPFUtils.normalize_cpf(cpf)
        # Sequências repetidas (000... a 999...) passariam no cálculo
        if len(digits) != 11 or digits == digits[0] * 11:
            return False
        numbers = [int(d) for d in digits]
        for count in (10, 11):
            soma = sum(numbers[i] * (count - i) for i in range(count - 1))
            digito = ((soma * 10) % 11) % 10
            if numbers[count - 1] != digito:
                return False
        return True

    @staticmethod
    def format_cpf(cpf: str) -> str:
        """
        Aplica a máscara ###.###.###-## quando houver exatamente 11 dígitos.
        Caso contrário devolve a entrada sem alterações.
        """
        digits = CPFUtils.normalize_cpf(cpf)
        if len(digits) != 11:
            return cpf
        return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"

    @staticmethod
    def mask_for_log(cpf: str) -> str:
        """Oculta o CPF em logs, mantendo apenas os dois últimos dígitos."""
        digits = CPFUtils.normalize_cpf(cpf)
        if not digits:
            return "<vazio>"
        return "*" * max(len(digits) - 2, 0) + digits[-2:]
