# horario/data_loader.py
"""
Carga de la foto de docentes/turmas/configuraciones que entrega el
almacenamiento externo: un directorio con CSVs o un único JSON.

teachers.csv:  id,name,subjects,max_daily_classes,max_weekly_classes,blocked,preferences,class_ids
classes.csv:   id,name,grade,shift,school_level,periods_per_day,curriculum
schedule_configs.csv (opcional): shift,start_time,end_time,class_duration,break_start,break_end,classes_per_day,passing_time

Listas separadas por ';'. Un bloqueo es 'monday:1' (día por nombre o índice
0-based, periodo 1-based como en la pantalla) o un rango '07:00-07:50', que
bloquea ese periodo todos los días del turno en el que exista. Un rango que
no coincide con ningún periodo de los turnos configurados es InvalidRecord.
"""
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import pandas as pd

from .config import EngineConfig
from .errors import InvalidRecord
from .layout import DayLayout, parse_range
from .model import DAYS, ScheduleConfig, SchoolClass, Teacher

SCHEDULE_CONFIG_FIELDS = (
    "start_time", "end_time", "class_duration", "break_start",
    "break_end", "classes_per_day", "passing_time",
)
INT_FIELDS = ("class_duration", "classes_per_day", "passing_time")


@dataclass(frozen=True)
class RosterBundle:
    teachers: List[Teacher]
    classes: List[SchoolClass]
    schedule_configs: Dict[str, ScheduleConfig]


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    return isinstance(value, str) and not value.strip()


def _as_list(value: Any) -> List[str]:
    if _blank(value):
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(v).strip() for v in value if not _blank(v)]
    return [v.strip() for v in str(value).split(";") if v.strip()]


def _as_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    if _blank(value):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        raise InvalidRecord(f"Número inválido: {value!r}") from None


def _day_index(token: str) -> int:
    token = token.strip().lower()
    if token in DAYS:
        return DAYS.index(token)
    day = _as_int(token)
    if not 0 <= day < len(DAYS):
        raise InvalidRecord(f"Día inválido: {token!r}")
    return day


def _periods_in(span: Tuple[int, int], layout: DayLayout) -> List[int]:
    return [s.period for s in layout.teaching if (s.start, s.end) == span]


def parse_blocked(
    tokens: Iterable[Any],
    layout: Optional[DayLayout] = None,
    other_layouts: Sequence[DayLayout] = (),
) -> Set[Tuple[int, int]]:
    """Un rango solo bloquea en `layout`; debe existir en él o en `other_layouts`."""
    blocked: Set[Tuple[int, int]] = set()
    for token in tokens:
        if isinstance(token, (list, tuple)) and len(token) == 2:
            # JSON: [día, periodo] ya en índices internos
            blocked.add((_day_index(str(token[0])), _as_int(token[1])))
            continue
        text = str(token).strip()
        if "-" in text:
            span = parse_range(text)
            here = _periods_in(span, layout) if layout is not None else []
            if not here and not any(_periods_in(span, other) for other in other_layouts):
                raise InvalidRecord(
                    f"El rango {text!r} no coincide con ningún periodo de los turnos configurados"
                )
            for period in here:
                blocked.update((d, period) for d in range(len(DAYS)))
            continue
        day, sep, period = text.partition(":")
        if not sep:
            raise InvalidRecord(f"Bloqueo inválido: {text!r} (usar 'monday:1')")
        number = _as_int(period)
        if number is None or number < 1:
            raise InvalidRecord(f"Periodo inválido en el bloqueo {text!r}")
        blocked.add((_day_index(day), number - 1))
    return blocked


def teacher_from_record(
    rec: Dict[str, Any],
    layout: Optional[DayLayout] = None,
    other_layouts: Sequence[DayLayout] = (),
) -> Teacher:
    # Registros antiguos guardan materias/bloqueos/preferencias en 'constraints'
    legacy = rec.get("constraints")
    if isinstance(legacy, str) and legacy.strip():
        legacy = json.loads(legacy)
    if not isinstance(legacy, dict):
        legacy = {}

    subjects = _as_list(rec.get("subjects")) or _as_list(legacy.get("subjects")) or _as_list(rec.get("subject"))
    raw_blocked = rec.get("blocked")
    blocked_tokens = raw_blocked if isinstance(raw_blocked, list) else _as_list(raw_blocked)
    blocked_tokens = list(blocked_tokens) + list(legacy.get("unavailableSlots") or [])
    max_daily = _as_int(rec.get("max_daily_classes"), 5)
    preferences = rec.get("preferences")
    if _blank(preferences):
        preferences = legacy.get("preferences") or ""

    return Teacher(
        id=str(rec["id"]).strip(),
        name=str(rec.get("name") or "").strip(),
        subjects=frozenset(subjects),
        max_daily_classes=max_daily,
        max_weekly_classes=_as_int(rec.get("max_weekly_classes"), max_daily * len(DAYS)),
        blocked=frozenset(parse_blocked(blocked_tokens, layout, other_layouts)),
        preferences=str(preferences),
        class_ids=frozenset(_as_list(rec.get("class_ids"))),
    )


def class_from_record(rec: Dict[str, Any]) -> SchoolClass:
    level = rec.get("school_level")
    return SchoolClass(
        id=str(rec["id"]).strip(),
        name=str(rec.get("name") or "").strip(),
        grade=str(rec["grade"]),
        shift=str(rec["shift"]).strip(),
        periods_per_day=_as_int(rec.get("periods_per_day")),
        curriculum=tuple(_as_list(rec.get("curriculum"))),
        school_level=None if _blank(level) else str(level).strip(),
    )


def schedule_config_from_record(rec: Dict[str, Any]) -> ScheduleConfig:
    values = {}
    for key in SCHEDULE_CONFIG_FIELDS:
        if key in rec and not _blank(rec[key]):
            values[key] = _as_int(rec[key]) if key in INT_FIELDS else str(rec[key]).strip()
    return ScheduleConfig(shift=str(rec["shift"]).strip(), **values)


def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    return df.to_dict(orient="records")


def _build_bundle(
    teacher_recs: List[Dict[str, Any]],
    class_recs: List[Dict[str, Any]],
    config_recs: List[Dict[str, Any]],
    shift: str,
    cfg: EngineConfig,
) -> RosterBundle:
    configs = cfg.all_schedule_configs()
    for rec in config_recs:
        sc = schedule_config_from_record(rec)
        configs[sc.shift] = sc
    layout = configs[shift].layout if shift in configs else None
    others = [sc.layout for s, sc in configs.items() if s != shift]
    try:
        teachers = [teacher_from_record(r, layout, others) for r in teacher_recs]
        classes = [class_from_record(r) for r in class_recs]
    except KeyError as exc:
        raise InvalidRecord(f"Falta la columna {exc}") from None
    return RosterBundle(teachers=teachers, classes=classes, schedule_configs=configs)


def load_rosters(data_dir: str, shift: str, cfg: Optional[EngineConfig] = None) -> RosterBundle:
    cfg = cfg or EngineConfig()
    base = Path(data_dir)
    if base.is_file():
        return load_snapshot(str(base), shift, cfg)

    def read(name: str) -> pd.DataFrame:
        return pd.read_csv(base / name, dtype=str, keep_default_na=False)

    teachers = read("teachers.csv")
    classes = read("classes.csv")
    configs = read("schedule_configs.csv") if (base / "schedule_configs.csv").exists() else pd.DataFrame()

    return _build_bundle(_records(teachers), _records(classes), _records(configs), shift, cfg)


def load_snapshot(path: str, shift: str, cfg: Optional[EngineConfig] = None) -> RosterBundle:
    cfg = cfg or EngineConfig()
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise InvalidRecord("El snapshot debe ser un objeto con teachers/classes")
    return _build_bundle(
        list(data.get("teachers", [])),
        list(data.get("classes", [])),
        list(data.get("schedule_configs", [])),
        shift,
        cfg,
    )
