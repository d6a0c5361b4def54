# horario/errors.py
"""
Taxonomía de errores del motor.

Solo los errores de entrada son fatales (se lanzan antes de buscar); las
violaciones de restricciones se absorben en el estado del horario devuelto.
"""
from enum import Enum


class InputError(ValueError):
    """Datos de entrada inválidos: la generación se aborta sin buscar."""


class EmptyTeacherRoster(InputError):
    pass


class EmptyClassRoster(InputError):
    pass


class MissingScheduleConfig(InputError):
    pass


class InvalidRecord(InputError):
    """Registro de docente, turma o configuración mal formado."""


class DocumentError(InputError):
    """Documento de horario externo que no se puede interpretar."""


class ViolationKind(str, Enum):
    # Orden = orden de poda del verificador (más barato y restrictivo primero)
    SLOT_FILLED = "slot_filled"
    TEACHER_BUSY = "teacher_busy"
    DAILY_LIMIT = "daily_limit"
    WEEKLY_LIMIT = "weekly_limit"
    UNAVAILABLE = "unavailable"
    UNQUALIFIED = "unqualified"
    CLASS_RESTRICTED = "class_restricted"

    @property
    def is_static(self) -> bool:
        """True si no depende de las asignaciones ya hechas."""
        return self in (
            ViolationKind.UNAVAILABLE,
            ViolationKind.UNQUALIFIED,
            ViolationKind.CLASS_RESTRICTED,
        )
