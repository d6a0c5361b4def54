# horario/layout.py
"""
Distribución de los periodos de un turno.

Los periodos de `duration` minutos se colocan uno tras otro desde el inicio
del turno; el periodo que pisaría el recreo se corre al final del recreo. El
recreo ocupa una posición de la grilla (time_slot) pero no lleva materia.
"""
from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import InvalidRecord


def parse_time(value) -> int:
    """'07:00' o '07:00:00' -> minutos desde medianoche."""
    text = str(value).strip()
    parts = text.split(":")
    if len(parts) not in (2, 3):
        raise InvalidRecord(f"Hora inválida: {value!r}")
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        raise InvalidRecord(f"Hora inválida: {value!r}") from None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise InvalidRecord(f"Hora fuera de rango: {value!r}")
    return hours * 60 + minutes


def format_time(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_range(label: str) -> Tuple[int, int]:
    """'07:00-07:50' (o '07:00 - 07:50') -> (420, 470)."""
    start, sep, end = str(label).partition("-")
    if not sep:
        raise InvalidRecord(f"Rango horario inválido: {label!r}")
    return parse_time(start), parse_time(end)


@dataclass(frozen=True)
class PeriodSlot:
    time_slot: int            # posición 1-based en la grilla del día, recreo incluido
    start: int
    end: int
    period: Optional[int]     # índice 0-based del periodo lectivo; None = recreo

    @property
    def is_break(self) -> bool:
        return self.period is None

    @property
    def label(self) -> str:
        return f"{format_time(self.start)}-{format_time(self.end)}"


@dataclass(frozen=True)
class DayLayout:
    slots: Tuple[PeriodSlot, ...]

    @property
    def teaching(self) -> Tuple[PeriodSlot, ...]:
        return tuple(s for s in self.slots if not s.is_break)

    @property
    def n_periods(self) -> int:
        return len(self.teaching)

    @property
    def break_slot(self) -> Optional[PeriodSlot]:
        for s in self.slots:
            if s.is_break:
                return s
        return None

    def slot_for_period(self, period: int) -> PeriodSlot:
        for s in self.slots:
            if s.period == period:
                return s
        raise KeyError(period)

    def grid_for(self, periods_per_day: int) -> Tuple[PeriodSlot, ...]:
        """Posiciones de la grilla que usa una turma con `periods_per_day` periodos.

        El recreo solo aparece si cae antes del último periodo de la turma.
        """
        if periods_per_day <= 0:
            return ()
        last = self.slot_for_period(periods_per_day - 1).time_slot
        return tuple(s for s in self.slots if s.time_slot <= last)


def lay_out_periods(
    start: int,
    end: int,
    duration: int,
    break_start: int,
    break_end: int,
    passing_time: int = 0,
) -> DayLayout:
    if duration <= 0:
        raise InvalidRecord("La duración de la clase debe ser positiva")
    if passing_time < 0:
        raise InvalidRecord("El intervalo entre clases no puede ser negativo")
    if not (start < break_start < break_end < end):
        raise InvalidRecord(
            f"El recreo {format_time(break_start)}-{format_time(break_end)} debe caer "
            f"dentro del turno {format_time(start)}-{format_time(end)}"
        )

    slots = []
    cursor = start
    period = 0
    break_placed = False
    while True:
        if not break_placed and cursor < break_end and cursor + duration > break_start:
            slots.append(PeriodSlot(len(slots) + 1, break_start, break_end, None))
            break_placed = True
            cursor = break_end
            continue
        if cursor + duration > end:
            break
        slots.append(PeriodSlot(len(slots) + 1, cursor, cursor + duration, period))
        period += 1
        cursor += duration + passing_time

    if not break_placed:
        raise InvalidRecord("El recreo no cae dentro de la grilla de periodos")
    return DayLayout(slots=tuple(slots))
