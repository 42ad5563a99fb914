"""
Máscaras de apresentação usadas pelo formulário de paciente (CEP e telefones).
"""
import re


class MaskUtils:
    @staticmethod
    def only_digits(value) -> str:
        if not isinstance(value, str):
            return ""
        return re.sub(r'[^0-9]', '', value)

    @staticmethod
    def is_complete_cep(cep: str) -> bool:
        return len(MaskUtils.only_digits(cep)) == 8

    @staticmethod
    def format_cep(cep: str) -> str:
        """
        Formata CEP no padrão #####-###.
        Exemplo: '01001000' -> '01001-000'
        """
        digits = MaskUtils.only_digits(cep)
        if len(digits) != 8:
            return cep
        return f"{digits[:5]}-{digits[5:]}"

    @staticmethod
    def format_phone(phone: str) -> str:
        """
        Formata telefone: 11 dígitos -> (##) #####-####, 10 dígitos -> (##) ####-####.
        Outros tamanhos são devolvidos sem alteração.
        """
        digits = MaskUtils.only_digits(phone)
        if len(digits) == 11:
            return f"({digits[:2]}) {digits[2:7]}-{digits[7:]}"
        if len(digits) == 10:
            return f"({digits[:2]}) {digits[2:6]}-{digits[6:]}"
        return phone
