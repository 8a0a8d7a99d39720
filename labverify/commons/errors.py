# labverify/commons/errors.py
"""Errores del núcleo de resultados de laboratorio.

Todos son recuperables por quien llama (recargar y reintentar, o confirmar
explícitamente el override). El clasificador nunca lanza ninguno de ellos.
"""


class LabError(Exception):
    """Base de todos los errores de labverify."""


class ValidationError(LabError, ValueError):
    """Entrada mal formada o incompleta."""


class NothingToSaveError(ValidationError):
    """Se intentó guardar un borrador sin ningún valor."""


class StateError(LabError):
    """Transición ilegal del ciclo de vida de la orden."""


class TerminalStateError(StateError):
    def __init__(self, order_id: str, status: str):
        super().__init__(f"Orden {order_id} en estado terminal '{status}': no admite cambios")
        self.order_id = order_id
        self.status = status


class InvalidTransitionError(StateError):
    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(f"Orden {order_id}: transición '{current}' -> '{target}' no permitida")
        self.order_id = order_id
        self.current = current
        self.target = target


class IncompleteWithoutOverrideError(StateError):
    def __init__(self, order_id: str, missing):
        missing = list(missing)
        super().__init__(
            f"Orden {order_id}: faltan valores para {', '.join(missing)} y no se confirmó el override"
        )
        self.order_id = order_id
        self.missing = missing


class NotFoundError(LabError, LookupError):
    """Orden, parámetro o examen inexistente."""


class ConcurrencyError(LabError):
    def __init__(self, order_id: str, expected: int, actual: int):
        super().__init__(
            f"Orden {order_id}: versión {expected} desactualizada (actual {actual}); recargue e intente de nuevo"
        )
        self.order_id = order_id
        self.expected = expected
        self.actual = actual


class NotAuthorizedError(LabError):
    """El actor no tiene la capacidad de verificar resultados."""


class OrderLockedError(ConcurrencyError):
    """Otra escritura tiene tomada la orden más allá del tiempo de espera."""

    def __init__(self, order_id: str, timeout: float):
        LabError.__init__(self, f"Orden {order_id} bloqueada por otra escritura ({timeout}s); intente de nuevo")
        self.order_id = order_id
        self.expected = None
        self.actual = None
        self.timeout = timeout
