# horario/conflicts.py
"""
Reporte de conflictos.

Recalcula desde cero las violaciones de restricciones duras de un horario
(generado, editado a mano o recibido de afuera) sin confiar en la
contabilidad de la búsqueda. Matrices de ocupación [entidad][día][periodo].
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import DefaultDict, Dict, List, Tuple

import numpy as np

from .availability import AvailabilityIndex
from .errors import ViolationKind
from .model import DAYS, Assignment, Conflict, Timetable, TimetableCell

logger = logging.getLogger(__name__)


@dataclass
class ConflictReport:
    conflicts: List[Conflict]
    unfilled: List[TimetableCell]

    @property
    def total(self) -> int:
        return sum(c.count for c in self.conflicts)

    def by_kind(self) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for c in self.conflicts:
            out[c.kind.value] = out.get(c.kind.value, 0) + c.count
        return out


def _slot_name(day: int, period: int) -> str:
    return f"{DAYS[day]} periodo {period + 1}"


def report_conflicts(timetable: Timetable, index: AvailabilityIndex) -> ConflictReport:
    assignments = timetable.assignments
    class_ids = sorted(set(timetable.periods_by_class) | {a.cell.class_id for a in assignments})
    teacher_ids = sorted(set(index.teacher_ids) | {a.teacher_id for a in assignments})
    c_idx = {cid: i for i, cid in enumerate(class_ids)}
    t_idx = {tid: i for i, tid in enumerate(teacher_ids)}
    n_periods = max([timetable.layout.n_periods] + [a.cell.period + 1 for a in assignments])

    ch_class = np.zeros((len(class_ids), len(DAYS), n_periods), dtype=int)
    ch_teach = np.zeros((len(teacher_ids), len(DAYS), n_periods), dtype=int)
    at_class: DefaultDict[Tuple[int, int, int], List[Assignment]] = defaultdict(list)
    at_teacher: DefaultDict[Tuple[int, int, int], List[Assignment]] = defaultdict(list)
    by_teacher_day: DefaultDict[Tuple[int, int], List[Assignment]] = defaultdict(list)

    for a in assignments:
        ci, ti = c_idx[a.cell.class_id], t_idx[a.teacher_id]
        d, p = a.cell.day, a.cell.period
        ch_class[ci, d, p] += 1
        ch_teach[ti, d, p] += 1
        at_class[(ci, d, p)].append(a)
        at_teacher[(ti, d, p)].append(a)
        by_teacher_day[(ti, d)].append(a)

    conflicts: List[Conflict] = []

    for ci, d, p in np.argwhere(ch_class > 1):
        group = at_class[(int(ci), int(d), int(p))]
        conflicts.append(Conflict(
            kind=ViolationKind.SLOT_FILLED,
            cells=tuple(a.cell for a in group),
            count=int(ch_class[ci, d, p]) - 1,
            detail=f"Turma {class_ids[ci]} con {len(group)} clases en {_slot_name(int(d), int(p))}",
        ))

    for ti, d, p in np.argwhere(ch_teach > 1):
        group = at_teacher[(int(ti), int(d), int(p))]
        conflicts.append(Conflict(
            kind=ViolationKind.TEACHER_BUSY,
            cells=tuple(a.cell for a in group),
            count=int(ch_teach[ti, d, p]) - 1,
            teacher_id=teacher_ids[ti],
            detail=f"Docente {teacher_ids[ti]} en {len(group)} turmas en {_slot_name(int(d), int(p))}",
        ))

    known = [tid for tid in teacher_ids if tid in index]
    if known:
        rows = np.array([t_idx[tid] for tid in known])
        daily = ch_teach[rows].sum(axis=2)            # [docente][día]
        weekly = daily.sum(axis=1)
        max_daily = np.array([index.teacher(tid).max_daily_classes for tid in known])
        max_weekly = np.array([index.teacher(tid).max_weekly_classes for tid in known])

        for k, d in np.argwhere(daily > max_daily[:, None]):
            tid = known[k]
            group = by_teacher_day[(t_idx[tid], int(d))]
            conflicts.append(Conflict(
                kind=ViolationKind.DAILY_LIMIT,
                cells=tuple(a.cell for a in group),
                count=int(daily[k, d] - max_daily[k]),
                teacher_id=tid,
                detail=f"Docente {tid}: {int(daily[k, d])} clases el {DAYS[int(d)]} (máx {int(max_daily[k])})",
            ))

        for k in np.flatnonzero(weekly > max_weekly):
            tid = known[k]
            cells = tuple(a.cell for a in assignments if a.teacher_id == tid)
            conflicts.append(Conflict(
                kind=ViolationKind.WEEKLY_LIMIT,
                cells=cells,
                count=int(weekly[k] - max_weekly[k]),
                teacher_id=tid,
                detail=f"Docente {tid}: {int(weekly[k])} clases en la semana (máx {int(max_weekly[k])})",
            ))

    for a in assignments:
        cell = a.cell
        if a.teacher_id not in index:
            conflicts.append(Conflict(
                ViolationKind.UNQUALIFIED, (cell,), teacher_id=a.teacher_id,
                detail=f"Docente desconocido {a.teacher_id}",
            ))
            continue
        teacher = index.teacher(a.teacher_id)
        if not index.is_available(teacher.id, cell.day, cell.period):
            conflicts.append(Conflict(
                ViolationKind.UNAVAILABLE, (cell,), teacher_id=teacher.id,
                detail=f"Docente {teacher.id} bloqueado en {_slot_name(cell.day, cell.period)}",
            ))
        if a.subject not in index.subjects_of(teacher.id):
            conflicts.append(Conflict(
                ViolationKind.UNQUALIFIED, (cell,), teacher_id=teacher.id,
                detail=f"Docente {teacher.id} no enseña {a.subject}",
            ))
        if teacher.class_ids and cell.class_id not in teacher.class_ids:
            conflicts.append(Conflict(
                ViolationKind.CLASS_RESTRICTED, (cell,), teacher_id=teacher.id,
                detail=f"Docente {teacher.id} no está asignado a la turma {cell.class_id}",
            ))

    occupied = {a.cell for a in assignments}
    unfilled = [c for c in timetable.cells() if c not in occupied]

    report = ConflictReport(conflicts=conflicts, unfilled=unfilled)
    if report.total:
        logger.info("Conflictos detectados: %s", report.by_kind())
    return report
