# horario/availability.py
"""
Índice de disponibilidad, construido una vez por solicitud.

Equivale a los dominios por oferta: para cada docente el conjunto de
(día, periodo) bloqueados y sus materias; para cada materia la lista ordenada
de docentes habilitados.
"""
from collections import defaultdict
from typing import Dict, FrozenSet, Iterable, List, Tuple

from .model import Teacher, TimetableCell


class AvailabilityIndex:
    def __init__(self, teachers: Iterable[Teacher]):
        self._teachers: Dict[str, Teacher] = {}
        for t in sorted(teachers, key=lambda t: t.id):
            self._teachers[t.id] = t

        by_subject: Dict[str, List[str]] = defaultdict(list)
        for tid, t in self._teachers.items():
            for subject in t.subjects:
                by_subject[subject].append(tid)
        # ids ya vienen ascendentes: orden estable para búsquedas reproducibles
        self._by_subject: Dict[str, Tuple[str, ...]] = {
            s: tuple(ids) for s, ids in by_subject.items()
        }

    def __contains__(self, teacher_id: str) -> bool:
        return teacher_id in self._teachers

    def __len__(self) -> int:
        return len(self._teachers)

    @property
    def teacher_ids(self) -> Tuple[str, ...]:
        return tuple(self._teachers)

    def teacher(self, teacher_id: str) -> Teacher:
        return self._teachers[teacher_id]

    def subjects_of(self, teacher_id: str) -> FrozenSet[str]:
        t = self._teachers.get(teacher_id)
        return t.subjects if t is not None else frozenset()

    def is_available(self, teacher_id: str, day: int, period: int) -> bool:
        t = self._teachers.get(teacher_id)
        if t is None:
            return False
        return (day, period) not in t.blocked

    def qualified_teachers(self, subject: str) -> Tuple[str, ...]:
        return self._by_subject.get(subject, ())

    def teaches_class(self, subject: str, class_id: str) -> bool:
        """Algún docente habilitado puede dar la materia a la turma (sin mirar bloqueos)."""
        for tid in self.qualified_teachers(subject):
            t = self._teachers[tid]
            if not t.class_ids or class_id in t.class_ids:
                return True
        return False

    def static_domain(self, subject: str, cell: TimetableCell) -> Tuple[str, ...]:
        """Docentes que pasan las restricciones que no dependen de otras asignaciones."""
        out = []
        for tid in self.qualified_teachers(subject):
            t = self._teachers[tid]
            if t.class_ids and cell.class_id not in t.class_ids:
                continue
            if (cell.day, cell.period) in t.blocked:
                continue
            out.append(tid)
        return tuple(out)
