# app/domain/families/formatting.py
"""Conversiones de valores al formato que espera NubeFact."""
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional, Union
from zoneinfo import ZoneInfo

import config

_CENTS = Decimal("0.01")

# Nombres de unidades comunes -> códigos SUNAT
_SUNAT_UNITS = {
    "UNIDAD": "NIU", "UNIDADES": "NIU", "UND": "NIU",
    "SERVICIO": "ZZ", "SERVICIOS": "ZZ", "SRV": "ZZ",
    "METRO": "MTR", "METROS": "MTR", "M": "MTR",
    "KILOGRAMO": "KGM", "KILOGRAMOS": "KGM", "KG": "KGM",
    "LITRO": "LTR", "LITROS": "LTR", "L": "LTR",
    "METRO CUBICO": "MTQ", "M3": "MTQ",
    "TONELADA": "TNE", "TONELADAS": "TNE", "TON": "TNE",
    "CAJA": "BX", "CAJAS": "BX",
    "BOLSA": "BG", "BOLSAS": "BG",
    "PAQUETE": "PK", "PAQUETES": "PK",
}


def format_gateway_date(value: Union[date, datetime, str]) -> str:
    """
    Devuelve la fecha como DD-MM-YYYY en el calendario de Lima.
    Un datetime con zona horaria se convierte primero a America/Lima;
    uno sin zona se toma tal cual.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(ZoneInfo(config.GATEWAY_TIMEZONE))
        value = value.date()
    return value.strftime("%d-%m-%Y")


def amount(value: Optional[Any]) -> str:
    if value is None:
        return "0.00"
    return str(Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP))


def quantity(value: Any) -> str:
    normalized = Decimal(str(value)).normalize()
    # Evita notación científica (ej. 1E+1)
    return format(normalized, "f")


def sunat_unit(unit: str) -> str:
    return _SUNAT_UNITS.get(unit.strip().upper(), unit)


def drop_empty(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Quita los bloques opcionales que no se llenaron."""
    return {key: value for key, value in payload.items() if value not in (None, "", [], {})}
