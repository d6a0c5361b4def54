# horario/constraints.py
"""
Verificador de restricciones duras.

Cada predicado responde si colocar (docente, materia) en una celda viola una
restricción dada el horario parcial actual. `check_placement` los evalúa en
orden de poda y devuelve la primera violación, o None.
"""
from collections import Counter
from typing import Callable, Dict, List, Optional, Tuple

from .availability import AvailabilityIndex
from .errors import ViolationKind
from .model import Assignment, Teacher, TimetableCell


class ScheduleState:
    """Horario parcial de una búsqueda: celdas ocupadas y contadores por docente."""

    def __init__(self):
        self.cells: Dict[TimetableCell, Assignment] = {}
        self.teacher_slots: Dict[Tuple[str, int, int], TimetableCell] = {}
        self.daily: Counter = Counter()    # (teacher_id, day) -> clases
        self.weekly: Counter = Counter()   # teacher_id -> clases
        self.taught: Counter = Counter()   # (class_id, materia) -> clases

    def place(self, a: Assignment) -> None:
        c = a.cell
        self.cells[c] = a
        self.teacher_slots[(a.teacher_id, c.day, c.period)] = c
        self.daily[(a.teacher_id, c.day)] += 1
        self.weekly[a.teacher_id] += 1
        self.taught[(c.class_id, a.subject)] += 1

    def remove(self, a: Assignment) -> None:
        c = a.cell
        del self.cells[c]
        del self.teacher_slots[(a.teacher_id, c.day, c.period)]
        self.daily[(a.teacher_id, c.day)] -= 1
        self.weekly[a.teacher_id] -= 1
        self.taught[(c.class_id, a.subject)] -= 1

    def assignments(self) -> List[Assignment]:
        return [self.cells[c] for c in sorted(self.cells)]


Check = Callable[[Teacher, str, TimetableCell, ScheduleState, AvailabilityIndex], bool]


def slot_free(teacher, subject, cell, state, index) -> bool:
    return cell not in state.cells


def teacher_free(teacher, subject, cell, state, index) -> bool:
    return (teacher.id, cell.day, cell.period) not in state.teacher_slots


def under_daily_limit(teacher, subject, cell, state, index) -> bool:
    return state.daily.get((teacher.id, cell.day), 0) < teacher.max_daily_classes


def under_weekly_limit(teacher, subject, cell, state, index) -> bool:
    return state.weekly.get(teacher.id, 0) < teacher.max_weekly_classes


def available(teacher, subject, cell, state, index) -> bool:
    return index.is_available(teacher.id, cell.day, cell.period)


def qualified(teacher, subject, cell, state, index) -> bool:
    return subject in teacher.subjects


def class_allowed(teacher, subject, cell, state, index) -> bool:
    return not teacher.class_ids or cell.class_id in teacher.class_ids


CHECKS: Tuple[Tuple[ViolationKind, Check], ...] = (
    (ViolationKind.SLOT_FILLED, slot_free),
    (ViolationKind.TEACHER_BUSY, teacher_free),
    (ViolationKind.DAILY_LIMIT, under_daily_limit),
    (ViolationKind.WEEKLY_LIMIT, under_weekly_limit),
    (ViolationKind.UNAVAILABLE, available),
    (ViolationKind.UNQUALIFIED, qualified),
    (ViolationKind.CLASS_RESTRICTED, class_allowed),
)


def check_placement(
    teacher: Teacher,
    subject: str,
    cell: TimetableCell,
    state: ScheduleState,
    index: AvailabilityIndex,
) -> Optional[ViolationKind]:
    for kind, check in CHECKS:
        if not check(teacher, subject, cell, state, index):
            return kind
    return None
