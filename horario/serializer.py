# horario/serializer.py
"""
Documento externo del horario.

{"schedule": {class_id: {"monday": [entradas...], ...}}, "conflicts": n,
 "status": ..., "summary": ...}

El recreo se emite como {"time_slot": n, "subject": "BREAK"} para que quien
lo muestre arme la grilla completa sin conocer la configuración del turno.
"""
import json
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .errors import DocumentError, InvalidRecord
from .layout import DayLayout, PeriodSlot, parse_range
from .model import (
    DAYS,
    SHIFTS,
    Assignment,
    Timetable,
    TimetableCell,
    UnfilledCell,
)

BREAK_SUBJECT = "BREAK"


def _entry(slot: PeriodSlot, **values) -> Dict[str, Any]:
    out = {"time_slot": slot.time_slot, "time": slot.label}
    out.update(values)
    return out


def to_document(timetable: Timetable, summary: str = "") -> Dict[str, Any]:
    by_cell = timetable.by_cell()
    intended = {u.cell: u.subject for u in timetable.unfilled}
    schedule: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}

    for class_id in timetable.class_ids:
        grid = timetable.layout.grid_for(timetable.periods_by_class[class_id])
        week: Dict[str, List[Dict[str, Any]]] = {}
        for day, day_name in enumerate(DAYS):
            entries = []
            for slot in grid:
                if slot.is_break:
                    entries.append(_entry(slot, subject=BREAK_SUBJECT))
                    continue
                cell = TimetableCell(class_id, day, slot.period)
                lessons = by_cell.get(cell)
                if not lessons:
                    entries.append(_entry(
                        slot, teacher_id=None, subject=intended.get(cell), unfilled=True
                    ))
                    continue
                for a in lessons:
                    entries.append(_entry(slot, teacher_id=a.teacher_id, subject=a.subject))
            week[day_name] = entries
        schedule[class_id] = week

    return {
        "schedule": schedule,
        "conflicts": timetable.conflicts,
        "status": timetable.status,
        "summary": summary,
        "shift": timetable.shift,
        "unfilled": [
            {
                "class_id": u.cell.class_id,
                "day": u.cell.day_name,
                "time_slot": timetable.layout.slot_for_period(u.cell.period).time_slot,
                "subject": u.subject,
                "reason": u.reason,
            }
            for u in timetable.unfilled
        ],
        "conflict_details": [
            {
                "kind": c.kind.value,
                "count": c.count,
                "teacher_id": c.teacher_id,
                "cells": [[x.class_id, x.day_name, x.period + 1] for x in c.cells],
                "detail": c.detail,
            }
            for c in timetable.conflict_details
        ],
        "stats": timetable.stats,
    }


def dumps(document: Dict[str, Any]) -> str:
    return json.dumps(document, sort_keys=True, ensure_ascii=False, indent=2)


def _time_slot(entry: Any) -> int:
    if not isinstance(entry, dict):
        raise DocumentError(f"Entrada inválida: {entry!r}")
    try:
        return int(entry["time_slot"])
    except (KeyError, TypeError, ValueError):
        raise DocumentError(f"Entrada sin time_slot válido: {entry!r}") from None


def _slot_from_entry(entry: Dict[str, Any], time_slot: int, period: Optional[int]) -> PeriodSlot:
    start = end = 0
    if entry.get("time"):
        try:
            start, end = parse_range(entry["time"])
        except InvalidRecord as exc:
            raise DocumentError(str(exc)) from None
    return PeriodSlot(time_slot, start, end, period)


def _parse_day(entries: Any) -> List[Tuple[PeriodSlot, Dict[str, Any]]]:
    """Numera los periodos lectivos en orden de time_slot; el recreo no cuenta."""
    if not isinstance(entries, list):
        raise DocumentError(f"Un día debe ser una lista de entradas, no {type(entries).__name__}")
    keyed = sorted(((_time_slot(e), i) for i, e in enumerate(entries)))
    out = []
    period = -1
    last_slot = None
    for time_slot, i in keyed:
        entry = entries[i]
        is_break = entry.get("subject") == BREAK_SUBJECT
        if not is_break and time_slot != last_slot:
            period += 1
        last_slot = time_slot
        out.append((_slot_from_entry(entry, time_slot, None if is_break else period), entry))
    return out


def from_document(document: Dict[str, Any]) -> Timetable:
    """Reconstruye un Timetable equivalente a partir del documento externo."""
    schedule = document.get("schedule") if isinstance(document, dict) else None
    if not isinstance(schedule, dict):
        raise DocumentError("El documento no tiene 'schedule'")
    shift = document.get("shift", SHIFTS[0])

    slots: Dict[int, PeriodSlot] = {}
    periods_by_class: Dict[str, int] = {}
    assignments: List[Assignment] = []
    unfilled: List[UnfilledCell] = []
    reasons = {
        (u.get("class_id"), u.get("day"), u.get("time_slot")): u.get("reason", "exhausted")
        for u in document.get("unfilled", [])
        if isinstance(u, dict)
    }

    for class_id in sorted(schedule):
        week = schedule[class_id]
        if not isinstance(week, dict):
            raise DocumentError(f"La semana de la turma {class_id} debe ser un objeto por día")
        periods = 0
        for day_name, entries in week.items():
            if day_name not in DAYS:
                raise DocumentError(f"Día desconocido {day_name!r} en la turma {class_id}")
            day = DAYS.index(day_name)
            for slot, entry in _parse_day(entries):
                known = slots.setdefault(slot.time_slot, slot)
                if known != slot:
                    raise DocumentError(
                        f"La posición {slot.time_slot} no coincide entre turmas/días"
                    )
                if slot.is_break:
                    continue
                periods = max(periods, slot.period + 1)
                cell = TimetableCell(str(class_id), day, slot.period)
                if entry.get("teacher_id") is None:
                    reason = reasons.get((class_id, day_name, slot.time_slot), "exhausted")
                    unfilled.append(UnfilledCell(cell, entry.get("subject"), reason))
                else:
                    assignments.append(
                        Assignment(str(entry["teacher_id"]), entry.get("subject"), cell)
                    )
        periods_by_class[str(class_id)] = periods

    try:
        conflicts = int(document.get("conflicts") or 0)
    except (TypeError, ValueError):
        raise DocumentError(f"conflicts inválido: {document.get('conflicts')!r}") from None
    layout = DayLayout(slots=tuple(slots[k] for k in sorted(slots)))
    return Timetable(
        shift=shift,
        layout=layout,
        periods_by_class=periods_by_class,
        assignments=sorted(assignments, key=lambda a: a.cell),
        unfilled=sorted(unfilled, key=lambda u: u.cell),
        status=document.get("status", ""),
        conflicts=conflicts,
        stats=dict(document.get("stats") or {}),
    )


def to_frame(timetable: Timetable) -> pd.DataFrame:
    rows = []
    for a in sorted(timetable.assignments, key=lambda a: a.cell):
        slot = timetable.layout.slot_for_period(a.cell.period)
        rows.append({
            "class_id": a.cell.class_id,
            "day": a.cell.day_name,
            "time_slot": slot.time_slot,
            "time": slot.label,
            "subject": a.subject,
            "teacher_id": a.teacher_id,
            "status": "ok",
        })
    for u in timetable.unfilled:
        slot = timetable.layout.slot_for_period(u.cell.period)
        rows.append({
            "class_id": u.cell.class_id,
            "day": u.cell.day_name,
            "time_slot": slot.time_slot,
            "time": slot.label,
            "subject": u.subject,
            "teacher_id": None,
            "status": u.reason,
        })
    columns = ["class_id", "day", "time_slot", "time", "subject", "teacher_id", "status"]
    df = pd.DataFrame(rows, columns=columns)
    if not df.empty:
        df["day_idx"] = df["day"].map(DAYS.index)
        df = df.sort_values(["class_id", "day_idx", "time_slot"]).drop(columns="day_idx")
        df = df.reset_index(drop=True)
    return df


def conflicts_to_frame(timetable: Timetable) -> pd.DataFrame:
    rows = [
        {
            "tipo": c.kind.value,
            "valor": c.count,
            "docente": c.teacher_id,
            "detalle": c.detail,
        }
        for c in timetable.conflict_details
    ]
    return pd.DataFrame(rows, columns=["tipo", "valor", "docente", "detalle"])
