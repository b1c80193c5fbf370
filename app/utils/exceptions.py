"""
Excepciones personalizadas del servicio de votos pagados.
"""


class VoteServiceError(Exception):
    """Error base del servicio."""

    def __init__(self, message: str, code: str = "VOTE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


# ============================================
# Errores de validación (antes de cualquier llamada externa)
# ============================================

class MissingContactError(VoteServiceError):
    """Falta el dato de contacto requerido por el método de pago."""

    def __init__(self, payment_method: str, field: str):
        super().__init__(
            message=f"Field '{field}' is required for payment method {payment_method}",
            code="MISSING_CONTACT",
        )
        self.payment_method = payment_method
        self.field = field


class UnsupportedProviderError(VoteServiceError):
    """Proveedor de pago desconocido."""

    def __init__(self, provider: str, available: list[str]):
        super().__init__(
            message=f"Payment provider '{provider}' not supported. Available: {available}",
            code="UNSUPPORTED_PROVIDER",
        )
        self.provider = provider


class UnsupportedPaymentMethodError(VoteServiceError):
    """Método de pago sin proveedor asociado."""

    def __init__(self, payment_method: str):
        super().__init__(
            message=f"Payment method not supported: {payment_method}",
            code="UNSUPPORTED_PAYMENT_METHOD",
        )
        self.payment_method = payment_method


class CandidateNotFoundError(VoteServiceError):
    """El candidato no fue encontrado."""

    def __init__(self, candidate_id: str):
        super().__init__(
            message=f"Candidate not found: {candidate_id}",
            code="CANDIDATE_NOT_FOUND",
        )
        self.candidate_id = candidate_id


class VoteNotFoundError(VoteServiceError):
    """El voto no fue encontrado."""

    def __init__(self, vote_id: str):
        super().__init__(
            message=f"Vote not found: {vote_id}",
            code="VOTE_NOT_FOUND",
        )
        self.vote_id = vote_id


class TransactionNotFoundError(VoteServiceError):
    """No existe transacción para la referencia dada."""

    def __init__(self, reference: str):
        super().__init__(
            message=f"Transaction not found: {reference}",
            code="TRANSACTION_NOT_FOUND",
        )
        self.reference = reference


# ============================================
# Errores de proveedor y de confianza
# ============================================

class PaymentProviderError(VoteServiceError):
    """Error del proveedor de pago externo."""

    def __init__(self, provider: str, message: str):
        super().__init__(
            message=f"Payment provider error ({provider}): {message}",
            code="PROVIDER_ERROR",
        )
        self.provider = provider
        self.reason = message


class ProviderAuthError(PaymentProviderError):
    """No se pudo obtener un access token del proveedor."""

    def __init__(self, provider: str, message: str):
        super().__init__(provider, f"authentication failed: {message}")
        self.code = "PROVIDER_AUTH_ERROR"


class WebhookVerificationError(VoteServiceError):
    """Error de verificación de webhook."""

    def __init__(self, message: str):
        super().__init__(
            message=f"Webhook verification failed: {message}",
            code="WEBHOOK_VERIFICATION_FAILED",
        )
        self.reason = message
