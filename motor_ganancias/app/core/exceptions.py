"""
exceptions.py
-------------
Excepciones personalizadas del Motor de Ganancias.

Todas heredan de EarningsEngineException para poder capturarlas
en un solo handler global en main.py.

Regla para quien llama a process_auto_payout: cualquier excepción
significa que NO se movió dinero. Los errores posteriores a la
transferencia (débito o registro) nunca se propagan.
"""


class EarningsEngineException(Exception):
    """Base de todas las excepciones del motor."""
    status_code: int = 500
    message: str = "Error interno del motor de ganancias."

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.message
        super().__init__(self.message)


# ─────────────────────────────────────────────────────────────────────
# Errores de validación y conflicto
# ─────────────────────────────────────────────────────────────────────

class ValidationError(EarningsEngineException):
    """Payload de conexión, umbral o monto con formato inválido."""
    status_code = 422
    message = "Datos inválidos."


class ConflictError(EarningsEngineException):
    """Otro rail ya conectado, o un payout del mismo usuario en curso."""
    status_code = 409
    message = "Ya existe otro método de cobro conectado para este usuario."


# ─────────────────────────────────────────────────────────────────────
# Errores de configuración de la plataforma
# ─────────────────────────────────────────────────────────────────────

class RailDisabledError(EarningsEngineException):
    """La plataforma tiene deshabilitado el rail solicitado."""
    status_code = 403
    message = "Este método de cobro no está habilitado."


class NotConfiguredError(EarningsEngineException):
    """Faltan credenciales del rail."""
    status_code = 503
    message = "El método de cobro no está configurado."


class PayoutsDisabledError(EarningsEngineException):
    """El administrador puso el modo de pago en manual."""
    status_code = 403
    message = (
        "Los pagos automáticos están deshabilitados. "
        "El administrador configuró el modo de pago manual."
    )


# ─────────────────────────────────────────────────────────────────────
# Errores de elegibilidad y fondos
# ─────────────────────────────────────────────────────────────────────

class NotEligibleError(EarningsEngineException):
    """El usuario no cumple las condiciones para recibir un payout."""
    status_code = 409
    message = "El usuario no es elegible para pagos automáticos."


class InsufficientFundsError(EarningsEngineException):
    """El saldo disponible no cubre el monto solicitado."""
    status_code = 400
    message = "Saldo de ganancias insuficiente."


# ─────────────────────────────────────────────────────────────────────
# Errores de proveedores externos
# ─────────────────────────────────────────────────────────────────────

class ExternalTransferError(EarningsEngineException):
    """El rail rechazó la transferencia, no respondió a tiempo o respondió basura."""
    status_code = 502
    message = "Error del proveedor de pagos."
