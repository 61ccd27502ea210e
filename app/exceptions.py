"""
Taxonomia de erros da API.

Os serviços levantam estas exceções; o handler registrado em app.main
converte cada uma em JSON {"detail": ...} com o status HTTP da classe.
"""


class DreamlogError(Exception):
    """Erro base com status HTTP associado"""
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(DreamlogError):
    status_code = 400
    default_detail = "Invalid request"


class AuthError(DreamlogError):
    status_code = 401
    default_detail = "Authentication required"


class PaymentRequired(DreamlogError):
    status_code = 402
    default_detail = "Payment required"


class QuotaExceeded(PaymentRequired):
    default_detail = "Quota exceeded. Purchase credits or subscribe to continue."


class InsufficientBalance(PaymentRequired):
    default_detail = "Insufficient credit balance"


class Forbidden(DreamlogError):
    status_code = 403
    default_detail = "Forbidden"


class NotFound(DreamlogError):
    status_code = 404
    default_detail = "Not found"


class Conflict(DreamlogError):
    status_code = 409
    default_detail = "Conflict"


class UpstreamProviderError(DreamlogError):
    status_code = 502
    default_detail = "Payment provider error - please try again"


class CardDeclined(UpstreamProviderError):
    """Recusa de cartão: a mensagem do provider é repassada ao usuário"""
    status_code = 402
    default_detail = "Your card was declined"


class InternalError(DreamlogError):
    status_code = 500
