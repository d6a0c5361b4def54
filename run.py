import argparse
import json
import logging
import sys
import time
from concurrent.futures import ProcessPoolExecutor
from pathlib import Path
from typing import List, Tuple

import pandas as pd

from horario.config import EngineConfig, load_config
from horario.data_loader import load_rosters
from horario.engine import GenerationRequest, build_summary, generate_timetable, validate_timetable
from horario.errors import InputError
from horario.model import DAYS, SHIFTS, Timetable
from horario.serializer import conflicts_to_frame, dumps, from_document, to_document, to_frame


def build_request(data_dir: str, shift: str, cfg: EngineConfig) -> GenerationRequest:
    bundle = load_rosters(data_dir, shift, cfg)
    return GenerationRequest(
        shift=shift,
        teachers=bundle.teachers,
        classes=bundle.classes,
        schedule_config=bundle.schedule_configs.get(shift),
    )


def run_shift(data_dir: str, shift: str, cfg: EngineConfig) -> Tuple[Timetable, str, float]:
    request = build_request(data_dir, shift, cfg)
    start = time.perf_counter()
    timetable = generate_timetable(request, cfg)
    elapsed = time.perf_counter() - start
    return timetable, build_summary(timetable, len(request.teachers)), elapsed


def print_grid(timetable: Timetable, max_classes: int = 3):
    df = to_frame(timetable)
    if df.empty:
        return
    for class_id in timetable.class_ids[:max_classes]:
        grid = df[df["class_id"] == class_id].pivot_table(
            index=["time_slot", "time"], columns="day", values="subject", aggfunc="first"
        )
        grid = grid.reindex(columns=[d for d in DAYS if d in grid.columns])
        print(f"\n--- Turma {class_id} ---")
        print(grid.to_string())


def export_outputs(timetable: Timetable, summary: str, elapsed: float, out_dir: Path):
    out_dir.mkdir(parents=True, exist_ok=True)
    shift = timetable.shift
    (out_dir / f"schedule_{shift}.json").write_text(
        dumps(to_document(timetable, summary)), encoding="utf-8"
    )
    to_frame(timetable).to_csv(out_dir / f"schedule_{shift}.csv", index=False)
    conflicts_to_frame(timetable).to_csv(out_dir / f"conflicts_{shift}.csv", index=False)
    metrics = dict(timetable.stats)
    metrics.pop("rejections", None)
    metrics.update({"shift": shift, "status": timetable.status,
                    "conflicts": timetable.conflicts, "time_sec": elapsed})
    pd.DataFrame([metrics]).to_csv(out_dir / f"metrics_{shift}.csv", index=False)


def cmd_generate(args) -> int:
    cfg = load_config(args.config)
    shifts: List[str] = list(SHIFTS) if args.shift == "both" else [args.shift]

    print(f"Cargando datos de {args.data_dir}...")
    if len(shifts) > 1:
        # Cada turno es una solicitud independiente: sin estado compartido
        with ProcessPoolExecutor(max_workers=len(shifts)) as pool:
            futures = [pool.submit(run_shift, args.data_dir, s, cfg) for s in shifts]
            results = [f.result() for f in futures]
    else:
        results = [run_shift(args.data_dir, shifts[0], cfg)]

    out_dir = Path(args.out)
    for timetable, summary, elapsed in results:
        print(f"\n=== TURNO {timetable.shift.upper()} ===")
        print(summary)
        print(f"Estado: {timetable.status} | Conflictos: {timetable.conflicts} | "
              f"Sin docente: {len(timetable.unfilled)} | Backtracks: {timetable.stats.get('backtracks', 0)} | "
              f"Tiempo: {elapsed:.2f}s")
        if args.show:
            print_grid(timetable)
        export_outputs(timetable, summary, elapsed, out_dir)
    print(f"\nSe guardaron resultados en {out_dir}/")
    return 0


def cmd_validate(args) -> int:
    cfg = load_config(args.config)
    document = json.loads(Path(args.document).read_text(encoding="utf-8"))
    timetable = from_document(document)
    bundle = load_rosters(args.data_dir, timetable.shift, cfg)
    report = validate_timetable(timetable, bundle.teachers)

    print(build_summary(timetable, len(bundle.teachers)))
    print(f"Estado: {timetable.status} | Conflictos: {report.total} | Sin docente: {len(report.unfilled)}")
    for conflict in report.conflicts:
        print(f"  [{conflict.kind.value}] x{conflict.count} {conflict.detail}")
    return 0 if report.total == 0 else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Generación de horarios escolares por turno")
    parser.add_argument("--config", default="config.yaml", help="Ruta al archivo de configuración")
    parser.add_argument("--data_dir", default="data", help="Directorio con los CSV (o un snapshot JSON)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log detallado")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Genera el horario de un turno")
    gen.add_argument("--shift", choices=list(SHIFTS) + ["both"], default="morning")
    gen.add_argument("--out", default="outputs", help="Directorio de salida")
    gen.add_argument("--show", action="store_true", help="Imprime la grilla de las primeras turmas")
    gen.set_defaults(func=cmd_generate)

    val = sub.add_parser("validate", help="Verifica un horario externo (editado o generado por otra vía)")
    val.add_argument("document", help="Documento JSON del horario")
    val.set_defaults(func=cmd_validate)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except InputError as exc:
        print(f"Error de entrada: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
