"""
Configuración del motor de horarios.

Incluye un cargador desde YAML (JSON también es YAML válido) para dejar los
parámetros de la búsqueda y las grillas de cada turno reproducibles.
"""
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List

import yaml

from .errors import InvalidRecord, MissingScheduleConfig
from .model import SHIFTS, ScheduleConfig
from .search import DEFAULT_BACKTRACK_BUDGET


# Orden canónico de materias: también desempata el plan de cada turma
DEFAULT_SUBJECT_ORDER: List[str] = [
    "Matemática",
    "Português",
    "História",
    "Geografia",
    "Ciências",
    "Inglês",
    "Arte",
    "Educação Física",
]

DEFAULT_SCHEDULE_CONFIGS: Dict[str, Dict[str, Any]] = {
    "morning": {
        "start_time": "07:00",
        "end_time": "12:00",
        "class_duration": 50,
        "break_start": "09:50",
        "break_end": "10:10",
        "classes_per_day": 5,
        "passing_time": 10,
    },
    "afternoon": {
        "start_time": "13:00",
        "end_time": "18:00",
        "class_duration": 50,
        "break_start": "15:50",
        "break_end": "16:10",
        "classes_per_day": 5,
        "passing_time": 10,
    },
}


@dataclass
class EngineConfig:
    # Búsqueda
    backtrack_budget: int = DEFAULT_BACKTRACK_BUDGET

    # Currículo
    subject_order: List[str] = field(default_factory=lambda: list(DEFAULT_SUBJECT_ORDER))
    default_curriculum: List[str] = field(default_factory=lambda: list(DEFAULT_SUBJECT_ORDER))
    subject_weights: Dict[str, int] = field(default_factory=dict)
    stagger_classes: bool = False

    # Grilla por turno
    schedule_configs: Dict[str, Dict[str, Any]] = field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_SCHEDULE_CONFIGS.items()}
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        merged = asdict(cls())
        for k, v in data.items():
            if k in merged:
                merged[k] = v
        return cls(**merged)

    def __post_init__(self):
        if int(self.backtrack_budget) < 0:
            raise ValueError("backtrack_budget no puede ser negativo")
        self.backtrack_budget = int(self.backtrack_budget)
        for subject, weight in self.subject_weights.items():
            if int(weight) <= 0:
                raise ValueError(f"Peso de la materia {subject!r} debe ser positivo")

    def schedule_config(self, shift: str) -> ScheduleConfig:
        raw = self.schedule_configs.get(shift)
        if raw is None:
            raise MissingScheduleConfig(f"No hay configuración de horario para el turno {shift!r}")
        values = {k: v for k, v in raw.items() if k != "shift"}
        try:
            return ScheduleConfig(shift=shift, **values)
        except TypeError as exc:
            raise InvalidRecord(f"Configuración de horario {shift!r} inválida: {exc}") from None

    def all_schedule_configs(self) -> Dict[str, ScheduleConfig]:
        return {s: self.schedule_config(s) for s in SHIFTS if s in self.schedule_configs}


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


def load_config(path: str = "config.yaml") -> EngineConfig:
    data = _load_yaml(Path(path))
    if not isinstance(data, dict):
        raise ValueError("config.yaml debe contener un objeto mapeo")
    return EngineConfig.from_dict(data)
