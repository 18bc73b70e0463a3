"""
Validadores específicos para Angola
"""
import re
from typing import Optional


NIF_EMPRESA_PATTERN = re.compile(r'^\d{10}$')
# Bilhete de Identidade: 9 dígitos + 2 letras (província) + 3 dígitos
NIF_BI_PATTERN = re.compile(r'^\d{9}[A-Z]{2}\d{3}$')


def normalize_nif(nif: str) -> str:
    """Remove espaços, pontos e hífens e passa a maiúsculas."""
    return re.sub(r'[\s\.\-]', '', nif or '').upper()


def validate_angola_nif(nif: str) -> bool:
    """
    Valida NIF angolano.
    Formatos válidos:
    - XXXXXXXXXX (pessoa colectiva, 10 dígitos)
    - XXXXXXXXXLLXXX (pessoa singular, número do BI)
    """
    cleaned = normalize_nif(nif)
    if not cleaned:
        return False
    return bool(NIF_EMPRESA_PATTERN.match(cleaned) or NIF_BI_PATTERN.match(cleaned))


def validate_angola_phone(phone: str) -> bool:
    """
    Valida telefone angolano.
    - +2449XXXXXXXX / 2449XXXXXXXX (móvel com indicativo)
    - 9XXXXXXXX (móvel local)
    - 2XXXXXXXX (fixo local)
    """
    cleaned = re.sub(r'[\s\-\(\)]', '', phone)

    patterns = [
        r'^\+244[29][0-9]{8}$',
        r'^244[29][0-9]{8}$',
        r'^[29][0-9]{8}$',
    ]

    return any(re.match(pattern, cleaned) for pattern in patterns)


def format_angola_phone(phone: str) -> Optional[str]:
    """Normaliza para +244XXXXXXXXX, ou None se inválido."""
    if not validate_angola_phone(phone):
        return None
    digits = re.sub(r'\D', '', phone)
    if digits.startswith('244'):
        digits = digits[3:]
    return f"+244{digits}"
