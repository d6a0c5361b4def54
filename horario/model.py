# horario/model.py
import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Tuple

from .errors import InvalidRecord, ViolationKind
from .layout import DayLayout, lay_out_periods, parse_time

DayIdx = int
PeriodIdx = int

DAYS: Tuple[str, ...] = ("monday", "tuesday", "wednesday", "thursday", "friday")
SHIFTS: Tuple[str, ...] = ("morning", "afternoon")

LEVEL_FUNDAMENTAL = "fundamental2"   # 6º a 9º ano
LEVEL_MEDIO = "medio"                # 1º a 3º ano do ensino médio

STATUS_COMPLETE = "complete"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"


def school_level_for_grade(grade: str) -> str:
    match = re.match(r"\s*(\d+)", str(grade))
    if not match:
        raise InvalidRecord(f"Série sin número: {grade!r}")
    number = int(match.group(1))
    if 6 <= number <= 9:
        return LEVEL_FUNDAMENTAL
    if 1 <= number <= 3:
        return LEVEL_MEDIO
    raise InvalidRecord(f"Série fuera de los niveles atendidos: {grade!r}")


def _check_shift(shift: str) -> None:
    if shift not in SHIFTS:
        raise InvalidRecord(f"Turno desconocido: {shift!r} (usar {', '.join(SHIFTS)})")


@dataclass(frozen=True)
class Teacher:
    id: str
    subjects: FrozenSet[str]
    max_daily_classes: int
    max_weekly_classes: int
    blocked: FrozenSet[Tuple[DayIdx, PeriodIdx]] = frozenset()
    preferences: str = ""            # texto libre, nunca se hace cumplir
    class_ids: FrozenSet[str] = frozenset()   # vacío = cualquier turma
    name: str = ""

    def __post_init__(self):
        object.__setattr__(self, "subjects", frozenset(self.subjects))
        object.__setattr__(self, "blocked", frozenset(tuple(b) for b in self.blocked))
        object.__setattr__(self, "class_ids", frozenset(self.class_ids))
        if not self.subjects:
            raise InvalidRecord(f"Docente {self.id}: debe tener al menos una materia")
        if self.max_daily_classes <= 0 or self.max_weekly_classes <= 0:
            raise InvalidRecord(f"Docente {self.id}: los límites de carga deben ser positivos")
        if self.max_daily_classes > self.max_weekly_classes:
            raise InvalidRecord(
                f"Docente {self.id}: máximo diario ({self.max_daily_classes}) "
                f"mayor que el semanal ({self.max_weekly_classes})"
            )
        for day, period in self.blocked:
            if not 0 <= day < len(DAYS) or period < 0:
                raise InvalidRecord(f"Docente {self.id}: bloqueo inválido ({day}, {period})")


@dataclass(frozen=True)
class SchoolClass:
    id: str
    grade: str
    shift: str
    periods_per_day: Optional[int] = None     # None = los del turno
    curriculum: Tuple[str, ...] = ()          # vacío = currículo por defecto
    school_level: Optional[str] = None        # se deriva de la série
    name: str = ""

    def __post_init__(self):
        _check_shift(self.shift)
        level = school_level_for_grade(self.grade)
        if self.school_level is not None and self.school_level != level:
            raise InvalidRecord(
                f"Turma {self.id}: nivel {self.school_level!r} no corresponde a la série {self.grade!r}"
            )
        object.__setattr__(self, "school_level", level)
        object.__setattr__(self, "curriculum", tuple(dict.fromkeys(self.curriculum)))
        if self.periods_per_day is not None and self.periods_per_day <= 0:
            raise InvalidRecord(f"Turma {self.id}: periodos por día debe ser positivo")


@dataclass(frozen=True)
class ScheduleConfig:
    shift: str
    start_time: str = "07:00"
    end_time: str = "12:00"
    class_duration: int = 50
    break_start: str = "09:50"
    break_end: str = "10:10"
    classes_per_day: int = 5
    passing_time: int = 0
    layout: DayLayout = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        _check_shift(self.shift)
        layout = lay_out_periods(
            parse_time(self.start_time),
            parse_time(self.end_time),
            int(self.class_duration),
            parse_time(self.break_start),
            parse_time(self.break_end),
            int(self.passing_time),
        )
        if layout.n_periods != self.classes_per_day:
            raise InvalidRecord(
                f"Configuración {self.shift}: caben {layout.n_periods} periodos "
                f"pero classes_per_day = {self.classes_per_day}"
            )
        object.__setattr__(self, "layout", layout)


@dataclass(frozen=True, order=True)
class TimetableCell:
    class_id: str
    day: DayIdx
    period: PeriodIdx

    @property
    def day_name(self) -> str:
        return DAYS[self.day]


@dataclass(frozen=True)
class Assignment:
    teacher_id: str
    subject: str
    cell: TimetableCell


@dataclass(frozen=True)
class UnfilledCell:
    cell: TimetableCell
    subject: Optional[str]
    reason: str = "exhausted"    # no_candidate | exhausted | budget


@dataclass(frozen=True)
class Conflict:
    kind: ViolationKind
    cells: Tuple[TimetableCell, ...]
    count: int = 1
    teacher_id: Optional[str] = None
    detail: str = ""


def class_cells(class_id: str, periods_per_day: int) -> List[TimetableCell]:
    """Celdas de una turma en orden canónico: lunes→viernes, periodo ascendente."""
    return [
        TimetableCell(class_id, day, period)
        for day in range(len(DAYS))
        for period in range(periods_per_day)
    ]


@dataclass
class Timetable:
    shift: str
    layout: DayLayout
    periods_by_class: Dict[str, int]
    assignments: List[Assignment] = field(default_factory=list)
    unfilled: List[UnfilledCell] = field(default_factory=list)
    status: str = STATUS_FAILED
    conflicts: int = 0
    conflict_details: List[Conflict] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def class_ids(self) -> List[str]:
        return sorted(self.periods_by_class)

    def cells(self, class_id: Optional[str] = None) -> Iterator[TimetableCell]:
        ids = [class_id] if class_id is not None else self.class_ids
        for cid in ids:
            yield from class_cells(cid, self.periods_by_class[cid])

    def assignments_at(self, cell: TimetableCell) -> List[Assignment]:
        return [a for a in self.assignments if a.cell == cell]

    def by_cell(self) -> Dict[TimetableCell, List[Assignment]]:
        out: Dict[TimetableCell, List[Assignment]] = {}
        for a in self.assignments:
            out.setdefault(a.cell, []).append(a)
        return out

    def filled_cells(self) -> int:
        occupied = {a.cell for a in self.assignments}
        return sum(1 for c in self.cells() if c in occupied)

    def refresh_status(self) -> str:
        total = sum(self.periods_by_class.values()) * len(DAYS)
        filled = self.filled_cells()
        if filled == total:
            self.status = STATUS_COMPLETE
        elif filled > 0:
            self.status = STATUS_PARTIAL
        else:
            self.status = STATUS_FAILED
        return self.status
