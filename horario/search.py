# horario/search.py
"""
Búsqueda de asignaciones con backtracking.

Máquina de estados sobre las celdas del horario:

    SELECTING    -> elige la próxima celda pendiente
    PLACING      -> prueba el siguiente candidato de la decisión en el tope
    BACKTRACKING -> deshace hasta la última decisión que bloquea a la celda fallida
    COMPLETE     -> no quedan celdas pendientes

La pila de decisiones tiene una entrada por celda en el orden de búsqueda, por
eso la próxima celda es siempre `order[len(stack)]`. Los dominios se podan una
sola vez con las restricciones estáticas (materia, turma, bloqueos); el orden
es de mínimos valores restantes con desempate canónico.

Cada candidato es un par (materia, docente). Primero van los docentes de la
materia del plan; después, las demás materias de la turma ordenadas por lo
que les falta para su cuota semanal según lo ya colocado. Así dos turmas con
el mismo plan se reparten un docente único en vez de dejar huecos.
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

from .availability import AvailabilityIndex
from .constraints import ScheduleState, check_placement
from .errors import ViolationKind
from .model import Assignment, TimetableCell, UnfilledCell

logger = logging.getLogger(__name__)

DEFAULT_BACKTRACK_BUDGET = 20000

Candidate = Tuple[str, str]   # (materia, teacher_id)


class Phase(Enum):
    SELECTING = "selecting"
    PLACING = "placing"
    BACKTRACKING = "backtracking"
    COMPLETE = "complete"


@dataclass
class Decision:
    cell: TimetableCell
    subject: str                       # materia del plan
    candidates: Tuple[Candidate, ...]
    index: int = 0
    placed: Optional[Assignment] = None
    unfilled_reason: Optional[str] = None


@dataclass
class SearchResult:
    assignments: List[Assignment]
    unfilled: List[UnfilledCell]
    backtracks: int
    budget_exhausted: bool
    rejections: Dict[str, int] = field(default_factory=dict)
    substituted: int = 0

    def stats(self) -> Dict[str, object]:
        return {
            "backtracks": self.backtracks,
            "budget_exhausted": self.budget_exhausted,
            "filled": len(self.assignments),
            "unfilled": len(self.unfilled),
            "substituted": self.substituted,
            "rejections": dict(sorted(self.rejections.items())),
        }


class AssignmentSearch:
    def __init__(
        self,
        plan: Mapping[TimetableCell, str],
        index: AvailabilityIndex,
        backtrack_budget: int = DEFAULT_BACKTRACK_BUDGET,
    ):
        self.plan = dict(plan)
        self.index = index
        self.budget = backtrack_budget
        self.state = ScheduleState()
        self.stack: List[Decision] = []
        self.backtracks = 0
        self.budget_exhausted = False
        self.rejections: Counter = Counter()

        # Cuota semanal por turma y materia; el orden de aparición en el plan es el canónico
        self.quota: Dict[str, Counter] = {}
        for cell in sorted(self.plan):
            self.quota.setdefault(cell.class_id, Counter())[self.plan[cell]] += 1
        self.viable: Dict[str, Tuple[str, ...]] = {
            cid: tuple(s for s in quota if index.teaches_class(s, cid))
            for cid, quota in self.quota.items()
        }

        self.domains: Dict[TimetableCell, Tuple[str, ...]] = {
            cell: index.static_domain(subject, cell) for cell, subject in self.plan.items()
        }
        self.unsatisfiable = sorted(c for c in self.plan if not self._can_fill(c))
        blocked = set(self.unsatisfiable)
        self.order: List[TimetableCell] = sorted(
            (c for c in self.plan if c not in blocked),
            key=lambda c: (len(self.domains[c]), c),
        )

    def _can_fill(self, cell: TimetableCell) -> bool:
        """Una materia que nadie puede dar a la turma deja sus celdas sin docente."""
        viable = self.viable[cell.class_id]
        if self.plan[cell] not in viable:
            return False
        return bool(self.domains[cell]) or any(
            self.index.static_domain(s, cell) for s in viable
        )

    def _fallback_subjects(self, cell: TimetableCell) -> List[str]:
        planned = self.plan[cell]
        viable = self.viable[cell.class_id]
        quota = self.quota[cell.class_id]
        rank = {s: i for i, s in enumerate(viable)}
        return sorted(
            (s for s in viable if s != planned),
            key=lambda s: (self.state.taught[(cell.class_id, s)] - quota[s], rank[s]),
        )

    def _candidates(self, cell: TimetableCell) -> Tuple[Candidate, ...]:
        planned = self.plan[cell]
        out = [(planned, tid) for tid in self.domains[cell]]
        for subject in self._fallback_subjects(cell):
            out.extend((subject, tid) for tid in self.index.static_domain(subject, cell))
        return tuple(out)

    def run(self) -> SearchResult:
        logger.debug(
            "Búsqueda: %d celdas, %d sin candidatos, presupuesto %d",
            len(self.plan), len(self.unsatisfiable), self.budget,
        )
        phase = Phase.SELECTING
        while phase is not Phase.COMPLETE:
            if phase is Phase.SELECTING:
                phase = self._select()
            elif phase is Phase.PLACING:
                phase = Phase.SELECTING if self._place_next(self.stack[-1]) else Phase.BACKTRACKING
            else:
                phase = self._backtrack()
        return self._result()

    def _select(self) -> Phase:
        if len(self.stack) == len(self.order):
            return Phase.COMPLETE
        cell = self.order[len(self.stack)]
        self.stack.append(Decision(cell, self.plan[cell], self._candidates(cell)))
        return Phase.PLACING

    def _place_next(self, decision: Decision) -> bool:
        while decision.index < len(decision.candidates):
            subject, tid = decision.candidates[decision.index]
            teacher = self.index.teacher(tid)
            kind = check_placement(teacher, subject, decision.cell, self.state, self.index)
            if kind is None:
                decision.placed = Assignment(tid, subject, decision.cell)
                self.state.place(decision.placed)
                return True
            self.rejections[kind.value] += 1
            decision.index += 1
        return False

    def _blockers(self, failed: Decision) -> Dict[str, ViolationKind]:
        """Motivo dinámico por el que cada docente candidato de la celda fallida no entra."""
        out = {}
        for subject, tid in failed.candidates:
            if tid in out:
                continue
            kind = check_placement(
                self.index.teacher(tid), subject, failed.cell, self.state, self.index
            )
            if kind is not None and not kind.is_static:
                out[tid] = kind
        return out

    def _culprit(self, failed: Decision) -> Optional[int]:
        """Posición de la decisión más reciente que bloquea a algún candidato."""
        blockers = self._blockers(failed)
        if not blockers:
            return None
        cell = failed.cell
        for pos in range(len(self.stack) - 2, -1, -1):
            placed = self.stack[pos].placed
            if placed is None or placed.teacher_id not in blockers:
                continue
            kind = blockers[placed.teacher_id]
            if kind is ViolationKind.WEEKLY_LIMIT:
                return pos
            if kind is ViolationKind.DAILY_LIMIT and placed.cell.day == cell.day:
                return pos
            if (
                kind is ViolationKind.TEACHER_BUSY
                and placed.cell.day == cell.day
                and placed.cell.period == cell.period
            ):
                return pos
        return None

    def _backtrack(self) -> Phase:
        failed = self.stack[-1]
        target = None
        if self.backtracks < self.budget:
            target = self._culprit(failed)
        elif not self.budget_exhausted:
            self.budget_exhausted = True
            logger.warning(
                "Presupuesto de backtracking agotado (%d); se completa en modo voraz",
                self.budget,
            )

        if target is None:
            failed.unfilled_reason = "budget" if self.budget_exhausted else "exhausted"
            logger.debug("Celda sin docente: %s (%s)", failed.cell, failed.subject)
            return Phase.SELECTING

        self.backtracks += 1
        while len(self.stack) - 1 > target:
            undone = self.stack.pop()
            if undone.placed is not None:
                self.state.remove(undone.placed)
        decision = self.stack[target]
        self.state.remove(decision.placed)
        decision.placed = None
        decision.index += 1
        return Phase.PLACING

    def _result(self) -> SearchResult:
        unfilled = [UnfilledCell(c, self.plan[c], "no_candidate") for c in self.unsatisfiable]
        unfilled.extend(
            UnfilledCell(d.cell, d.subject, d.unfilled_reason)
            for d in self.stack
            if d.placed is None
        )
        unfilled.sort(key=lambda u: u.cell)
        assignments = self.state.assignments()
        return SearchResult(
            assignments=assignments,
            unfilled=unfilled,
            backtracks=self.backtracks,
            budget_exhausted=self.budget_exhausted,
            rejections=dict(self.rejections),
            substituted=sum(1 for a in assignments if a.subject != self.plan[a.cell]),
        )
