"""
Utilidades para firmas HMAC-SHA256.
Usadas para verificar los webhooks firmados de los proveedores.
"""

import hashlib
import hmac

import structlog


logger = structlog.get_logger(__name__)


def generate_signature(payload: bytes, secret: str) -> str:
    """
    Genera una firma HMAC-SHA256 para un payload.

    Args:
        payload: Datos a firmar (bytes)
        secret: Clave secreta

    Returns:
        Firma hexadecimal
    """
    return hmac.new(
        secret.encode("utf-8"),
        payload,
        hashlib.sha256,
    ).hexdigest()


def verify_signature(
    payload: bytes,
    signature: str,
    secret: str,
) -> bool:
    """
    Verifica una firma HMAC-SHA256 en tiempo constante.

    Args:
        payload: Datos firmados (bytes)
        signature: Firma hexadecimal a verificar
        secret: Clave secreta

    Returns:
        True si la firma es válida
    """
    expected = generate_signature(payload, secret)
    match = hmac.compare_digest(
        expected.encode("utf-8"),
        signature.strip().lower().encode("utf-8"),
    )

    logger.debug(
        "Signature verification",
        payload_length=len(payload),
        match=match,
    )

    return match
