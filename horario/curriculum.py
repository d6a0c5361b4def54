# horario/curriculum.py
"""
Plan de materias por turma: round-robin con déficit.

Recorriendo las celdas de la turma en orden canónico, en cada paso se elige
la materia con mayor faltante respecto de una distribución semanal pareja
(ponderada si hay pesos). Empates: orden canónico de materias y luego orden
del currículo. Todas las celdas cuentan, se llenen o no, así el plan no
depende de los docentes elegidos.
"""
from typing import Dict, List, Mapping, Optional, Sequence

from .model import SchoolClass, TimetableCell, class_cells


def canonical_subjects(curriculum: Sequence[str], subject_order: Sequence[str]) -> List[str]:
    position = {s: i for i, s in enumerate(subject_order)}
    local = {s: i for i, s in enumerate(curriculum)}
    return sorted(
        dict.fromkeys(curriculum),
        key=lambda s: (position.get(s, len(position)), local[s]),
    )


def plan_subjects(
    school_class: SchoolClass,
    periods_per_day: int,
    curriculum: Sequence[str],
    subject_order: Sequence[str] = (),
    weights: Optional[Mapping[str, int]] = None,
    rotation: int = 0,
) -> Dict[TimetableCell, str]:
    subjects = canonical_subjects(curriculum, subject_order)
    if not subjects:
        return {}
    if rotation:
        # Desfasa turmas del mismo turno para que no pidan la misma materia a la vez
        offset = rotation % len(subjects)
        subjects = subjects[offset:] + subjects[:offset]
    weights = weights or {}
    w = {s: int(weights.get(s, 1)) for s in subjects}
    total = sum(w.values())
    taught = {s: 0 for s in subjects}

    plan: Dict[TimetableCell, str] = {}
    for step, cell in enumerate(class_cells(school_class.id, periods_per_day)):
        # faltante_s = w_s * (step + 1) / total - taught_s, escalado por total
        best = None
        best_gap = None
        for s in subjects:
            gap = w[s] * (step + 1) - taught[s] * total
            if best_gap is None or gap > best_gap:
                best, best_gap = s, gap
        plan[cell] = best
        taught[best] += 1
    return plan
