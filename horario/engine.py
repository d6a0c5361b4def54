# horario/engine.py
"""
Orquestación de una solicitud de generación.

validar entrada -> índice de disponibilidad -> plan de materias -> búsqueda
-> reporte de conflictos -> documento. Todo el estado vive en la llamada;
dos solicitudes (p. ej. mañana y tarde) pueden correr en paralelo.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .availability import AvailabilityIndex
from .config import EngineConfig
from .conflicts import ConflictReport, report_conflicts
from .curriculum import plan_subjects
from .errors import (
    EmptyClassRoster,
    EmptyTeacherRoster,
    InvalidRecord,
    MissingScheduleConfig,
)
from .model import (
    DAYS,
    SHIFTS,
    STATUS_COMPLETE,
    STATUS_PARTIAL,
    ScheduleConfig,
    SchoolClass,
    Teacher,
    Timetable,
)
from .search import AssignmentSearch
from .serializer import to_document

logger = logging.getLogger(__name__)

SHIFT_LABELS = {"morning": "da manhã", "afternoon": "da tarde"}


@dataclass(frozen=True)
class GenerationRequest:
    shift: str
    teachers: Sequence[Teacher]
    classes: Sequence[SchoolClass]
    schedule_config: Optional[ScheduleConfig]


def validate_request(request: GenerationRequest) -> Tuple[List[Teacher], List[SchoolClass], ScheduleConfig]:
    if request.shift not in SHIFTS:
        raise InvalidRecord(f"Turno desconocido: {request.shift!r}")
    if not request.teachers:
        raise EmptyTeacherRoster("No hay docentes registrados. Agregue docentes primero.")

    classes = [c for c in request.classes if c.shift == request.shift]
    if len(classes) < len(request.classes):
        logger.debug(
            "Se descartan %d turmas de otro turno", len(request.classes) - len(classes)
        )
    if not classes:
        raise EmptyClassRoster(f"No hay turmas registradas para el turno {request.shift!r}.")

    cfg = request.schedule_config
    if cfg is None:
        raise MissingScheduleConfig(f"Falta la configuración de horario del turno {request.shift!r}")
    if cfg.shift != request.shift:
        raise MissingScheduleConfig(
            f"La configuración recibida es del turno {cfg.shift!r}, no de {request.shift!r}"
        )

    for label, ids in (
        ("docente", [t.id for t in request.teachers]),
        ("turma", [c.id for c in classes]),
    ):
        seen = set()
        for i in ids:
            if i in seen:
                raise InvalidRecord(f"Identificador de {label} repetido: {i!r}")
            seen.add(i)

    for c in classes:
        if c.periods_per_day is not None and c.periods_per_day > cfg.classes_per_day:
            raise InvalidRecord(
                f"Turma {c.id}: pide {c.periods_per_day} periodos y el turno tiene {cfg.classes_per_day}"
            )

    return list(request.teachers), sorted(classes, key=lambda c: c.id), cfg


def generate_timetable(request: GenerationRequest, cfg: Optional[EngineConfig] = None) -> Timetable:
    cfg = cfg or EngineConfig()
    teachers, classes, schedule_config = validate_request(request)
    index = AvailabilityIndex(teachers)

    periods_by_class: Dict[str, int] = {}
    plan = {}
    for position, c in enumerate(classes):
        periods = c.periods_per_day or schedule_config.classes_per_day
        curriculum = c.curriculum or tuple(cfg.default_curriculum)
        if not curriculum:
            raise InvalidRecord(f"Turma {c.id}: sin currículo y sin currículo por defecto")
        periods_by_class[c.id] = periods
        rotation = position if cfg.stagger_classes else 0
        plan.update(plan_subjects(
            c, periods, curriculum, cfg.subject_order, cfg.subject_weights, rotation
        ))

    logger.info(
        "Generando horario %s: %d turmas, %d docentes, %d celdas",
        request.shift, len(classes), len(teachers), len(plan),
    )
    result = AssignmentSearch(plan, index, cfg.backtrack_budget).run()

    timetable = Timetable(
        shift=request.shift,
        layout=schedule_config.layout,
        periods_by_class=periods_by_class,
        assignments=result.assignments,
        unfilled=result.unfilled,
        stats=result.stats(),
    )
    apply_report(timetable, report_conflicts(timetable, index))
    logger.info(
        "Horario %s: estado=%s, sin docente=%d, conflictos=%d, backtracks=%d",
        request.shift, timetable.status, len(timetable.unfilled),
        timetable.conflicts, result.backtracks,
    )
    return timetable


def apply_report(timetable: Timetable, report: ConflictReport) -> Timetable:
    timetable.conflicts = report.total
    timetable.conflict_details = list(report.conflicts)
    timetable.refresh_status()
    return timetable


def validate_timetable(timetable: Timetable, teachers: Sequence[Teacher]) -> ConflictReport:
    """Verifica un horario de origen externo (editado a mano o de otro generador)."""
    report = report_conflicts(timetable, AvailabilityIndex(teachers))
    apply_report(timetable, report)
    return report


def build_summary(timetable: Timetable, n_teachers: int) -> str:
    text = (
        f"Horário gerado para {len(timetable.periods_by_class)} turma(s) do turno "
        f"{SHIFT_LABELS.get(timetable.shift, timetable.shift)} com {n_teachers} professor(es)."
    )
    if timetable.status == STATUS_COMPLETE:
        # Un documento externo puede estar completo y aun así tener conflictos
        if timetable.conflicts:
            return f"{text[:-1]}, com {timetable.conflicts} conflito(s)."
        return text
    missing = sum(timetable.periods_by_class.values()) * len(DAYS) - timetable.filled_cells()
    extra = f" {missing} aula(s) sem professor"
    if timetable.conflicts:
        extra += f", {timetable.conflicts} conflito(s)"
    if timetable.status == STATUS_PARTIAL:
        return text + extra + "."
    return f"Não foi possível gerar o horário do turno {SHIFT_LABELS.get(timetable.shift, timetable.shift)}:{extra}."


def generate_document(request: GenerationRequest, cfg: Optional[EngineConfig] = None) -> Dict[str, Any]:
    timetable = generate_timetable(request, cfg)
    return to_document(timetable, build_summary(timetable, len(request.teachers)))
