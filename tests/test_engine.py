import unittest
from collections import Counter

from horario.config import EngineConfig
from horario.curriculum import plan_subjects
from horario.engine import GenerationRequest, build_summary, generate_document, generate_timetable
from horario.errors import (
    EmptyClassRoster,
    EmptyTeacherRoster,
    InputError,
    InvalidRecord,
    MissingScheduleConfig,
)
from horario.model import ScheduleConfig, SchoolClass, Teacher
from horario.serializer import dumps, to_document


def morning_request(teachers, classes):
    return GenerationRequest("morning", teachers, classes, ScheduleConfig("morning"))


def example_request():
    teachers = [
        Teacher("T1", {"Math"}, 3, 15),
        Teacher("T2", {"Portuguese"}, 3, 15),
    ]
    classes = [SchoolClass("C1", "6º Ano", "morning", curriculum=("Math", "Portuguese"))]
    return morning_request(teachers, classes)


def dead_end_request():
    # El camino voraz (C1 -> A1) deja a C2 sin docente
    teachers = [
        Teacher("A1", {"Math"}, 5, 25, class_ids={"C1", "C2"}),
        Teacher("A2", {"Math"}, 5, 25, class_ids={"C1"}),
        Teacher("A3", {"Math"}, 5, 25, class_ids={"C2", "C3"}),
    ]
    classes = [
        SchoolClass(cid, "7º Ano", "morning", periods_per_day=1, curriculum=("Math",))
        for cid in ("C1", "C2", "C3")
    ]
    return morning_request(teachers, classes)


class HardConstraintAssertions:
    def assertRespectsHardConstraints(self, timetable, teachers):
        by_id = {t.id: t for t in teachers}
        class_slots = set()
        teacher_slots = set()
        daily = Counter()
        weekly = Counter()
        for a in timetable.assignments:
            cell = a.cell
            self.assertNotIn(cell, class_slots)
            class_slots.add(cell)
            key = (a.teacher_id, cell.day, cell.period)
            self.assertNotIn(key, teacher_slots)
            teacher_slots.add(key)
            daily[(a.teacher_id, cell.day)] += 1
            weekly[a.teacher_id] += 1

            t = by_id[a.teacher_id]
            self.assertIn(a.subject, t.subjects)
            self.assertNotIn((cell.day, cell.period), t.blocked)
            if t.class_ids:
                self.assertIn(cell.class_id, t.class_ids)
        for (tid, _day), n in daily.items():
            self.assertLessEqual(n, by_id[tid].max_daily_classes)
        for tid, n in weekly.items():
            self.assertLessEqual(n, by_id[tid].max_weekly_classes)


class GenerationTests(HardConstraintAssertions, unittest.TestCase):
    def test_two_subjects_single_class_is_complete(self):
        request = example_request()
        timetable = generate_timetable(request)
        self.assertEqual(timetable.status, "complete")
        self.assertEqual(timetable.conflicts, 0)
        self.assertEqual(timetable.unfilled, [])
        self.assertEqual(len(timetable.assignments), 25)
        subjects = Counter(a.subject for a in timetable.assignments)
        self.assertEqual(subjects["Math"], 13)
        self.assertEqual(subjects["Portuguese"], 12)
        for a in timetable.assignments:
            self.assertEqual(a.teacher_id, "T1" if a.subject == "Math" else "T2")
        self.assertRespectsHardConstraints(timetable, request.teachers)

    def test_exact_capacity_is_filled(self):
        teachers = [
            Teacher("A1", {"Math"}, 3, 13),
            Teacher("A2", {"Math"}, 3, 13),
            Teacher("B1", {"Portuguese"}, 3, 12),
            Teacher("B2", {"Portuguese"}, 3, 12),
        ]
        classes = [
            SchoolClass(cid, "8º Ano", "morning", curriculum=("Math", "Portuguese"))
            for cid in ("C1", "C2")
        ]
        timetable = generate_timetable(morning_request(teachers, classes))
        self.assertEqual(timetable.status, "complete")
        self.assertEqual(timetable.filled_cells(), 50)
        self.assertRespectsHardConstraints(timetable, teachers)
        c1 = {a.teacher_id for a in timetable.assignments if a.cell.class_id == "C1"}
        c2 = {a.teacher_id for a in timetable.assignments if a.cell.class_id == "C2"}
        self.assertEqual(c1, {"A1", "B1"})
        self.assertEqual(c2, {"A2", "B2"})

    def test_sibling_classes_share_single_teachers(self):
        teachers = [
            Teacher("A1", {"Math"}, 5, 25),
            Teacher("B1", {"Portuguese"}, 5, 25),
        ]
        classes = [
            SchoolClass(cid, "6º Ano", "morning", curriculum=("Math", "Portuguese"))
            for cid in ("C1", "C2")
        ]
        timetable = generate_timetable(morning_request(teachers, classes))
        self.assertEqual(timetable.status, "complete")
        self.assertEqual(timetable.unfilled, [])
        self.assertEqual(timetable.filled_cells(), 50)
        self.assertEqual(timetable.stats["substituted"], 25)
        for cid in ("C1", "C2"):
            subjects = Counter(a.subject for a in timetable.assignments if a.cell.class_id == cid)
            self.assertLessEqual(abs(subjects["Math"] - subjects["Portuguese"]), 1)
        self.assertRespectsHardConstraints(timetable, teachers)

    def test_blocked_planned_teacher_falls_back_to_other_subject(self):
        teachers = [
            Teacher("A1", {"Math"}, 5, 25, blocked={(0, 0)}),
            Teacher("B1", {"Portuguese"}, 5, 25),
        ]
        classes = [SchoolClass("C1", "6º Ano", "morning", curriculum=("Math", "Portuguese"))]
        timetable = generate_timetable(morning_request(teachers, classes))
        self.assertEqual(timetable.status, "complete")
        first = timetable.by_cell()[timetable.assignments[0].cell]
        self.assertEqual([(a.teacher_id, a.subject) for a in first], [("B1", "Portuguese")])
        self.assertRespectsHardConstraints(timetable, teachers)

    def test_subject_without_teacher_degrades_to_partial(self):
        teachers = [
            Teacher("A1", {"Math"}, 5, 25),
            Teacher("B1", {"Portuguese"}, 5, 25),
        ]
        school_class = SchoolClass("C1", "1º Ano", "morning", curriculum=("Math", "Portuguese", "Music"))
        timetable = generate_timetable(morning_request(teachers, [school_class]))

        plan = plan_subjects(school_class, 5, school_class.curriculum)
        music_cells = sorted(c for c, s in plan.items() if s == "Music")
        self.assertEqual(len(music_cells), 8)
        self.assertEqual(timetable.status, "partial")
        self.assertEqual(timetable.conflicts, 0)
        self.assertEqual([u.cell for u in timetable.unfilled], music_cells)
        for u in timetable.unfilled:
            self.assertEqual(u.subject, "Music")
            self.assertEqual(u.reason, "no_candidate")
        self.assertEqual(len(timetable.assignments), 17)
        self.assertRespectsHardConstraints(timetable, teachers)

    def test_blocked_slot_goes_to_another_teacher(self):
        teachers = [
            Teacher("A1", {"Math"}, 5, 25, blocked={(0, 0)}),
            Teacher("A2", {"Math"}, 5, 25),
            Teacher("B1", {"Portuguese"}, 5, 25),
        ]
        classes = [SchoolClass("C1", "6º Ano", "morning", curriculum=("Math", "Portuguese"))]
        timetable = generate_timetable(morning_request(teachers, classes))
        self.assertEqual(timetable.status, "complete")
        first = [a for a in timetable.assignments if (a.cell.day, a.cell.period) == (0, 0)]
        self.assertEqual([a.teacher_id for a in first], ["A2"])
        self.assertRespectsHardConstraints(timetable, teachers)

    def test_backtracking_recovers_greedy_dead_end(self):
        request = dead_end_request()
        timetable = generate_timetable(request)
        self.assertEqual(timetable.status, "complete")
        self.assertGreaterEqual(timetable.stats["backtracks"], 1)
        self.assertFalse(timetable.stats["budget_exhausted"])
        owner = {a.cell.class_id: a.teacher_id for a in timetable.assignments}
        self.assertEqual(owner, {"C1": "A2", "C2": "A1", "C3": "A3"})
        self.assertRespectsHardConstraints(timetable, request.teachers)

    def test_zero_budget_leaves_dead_end_unfilled(self):
        request = dead_end_request()
        timetable = generate_timetable(request, EngineConfig(backtrack_budget=0))
        self.assertEqual(timetable.status, "partial")
        self.assertTrue(timetable.stats["budget_exhausted"])
        self.assertEqual(timetable.stats["backtracks"], 0)
        self.assertEqual(len(timetable.unfilled), 5)
        for u in timetable.unfilled:
            self.assertEqual(u.cell.class_id, "C2")
            self.assertEqual(u.reason, "budget")
        self.assertEqual(timetable.conflicts, 0)
        self.assertRespectsHardConstraints(timetable, request.teachers)

    def test_output_is_deterministic(self):
        first = dumps(to_document(generate_timetable(example_request())))
        second = dumps(to_document(generate_timetable(example_request())))
        self.assertEqual(first, second)

    def test_roster_order_does_not_change_result(self):
        request = dead_end_request()
        shuffled = GenerationRequest(
            "morning",
            list(reversed(request.teachers)),
            list(reversed(request.classes)),
            request.schedule_config,
        )
        self.assertEqual(
            generate_timetable(request).assignments,
            generate_timetable(shuffled).assignments,
        )

    def test_stagger_rotates_subjects_between_classes(self):
        teachers = [
            Teacher("A1", {"Math"}, 5, 25),
            Teacher("B1", {"Portuguese"}, 5, 25),
        ]
        classes = [
            SchoolClass(cid, "6º Ano", "morning", curriculum=("Math", "Portuguese"))
            for cid in ("C1", "C2")
        ]
        request = morning_request(teachers, classes)
        timetable = generate_timetable(request, EngineConfig(stagger_classes=True))
        self.assertEqual(timetable.status, "complete")
        self.assertRespectsHardConstraints(timetable, teachers)


class RequestValidationTests(unittest.TestCase):
    def test_empty_teacher_roster(self):
        request = morning_request([], example_request().classes)
        with self.assertRaises(EmptyTeacherRoster):
            generate_timetable(request)

    def test_no_classes_in_shift(self):
        classes = [SchoolClass("C9", "9º Ano", "afternoon")]
        request = morning_request(example_request().teachers, classes)
        with self.assertRaises(EmptyClassRoster):
            generate_timetable(request)

    def test_missing_or_foreign_schedule_config(self):
        base = example_request()
        for cfg in (None, ScheduleConfig("afternoon", "13:00", "18:00", 50, "15:50", "16:10", 5)):
            request = GenerationRequest("morning", base.teachers, base.classes, cfg)
            with self.assertRaises(MissingScheduleConfig):
                generate_timetable(request)

    def test_duplicate_teacher_ids(self):
        base = example_request()
        request = morning_request(list(base.teachers) + [Teacher("T1", {"Art"}, 3, 15)], base.classes)
        with self.assertRaises(InvalidRecord):
            generate_timetable(request)

    def test_class_longer_than_shift(self):
        classes = [SchoolClass("C1", "6º Ano", "morning", periods_per_day=6)]
        request = morning_request(example_request().teachers, classes)
        with self.assertRaises(InputError):
            generate_timetable(request)


class DocumentTests(unittest.TestCase):
    def test_document_shape_and_summary(self):
        doc = generate_document(example_request())
        self.assertEqual(doc["status"], "complete")
        self.assertEqual(doc["conflicts"], 0)
        self.assertEqual(
            doc["summary"],
            "Horário gerado para 1 turma(s) do turno da manhã com 2 professor(es).",
        )
        monday = doc["schedule"]["C1"]["monday"]
        self.assertEqual(len(monday), 6)
        self.assertEqual(
            monday[3], {"time_slot": 4, "time": "09:50-10:10", "subject": "BREAK"}
        )
        self.assertEqual(
            monday[0], {"time_slot": 1, "time": "07:00-07:50", "teacher_id": "T1", "subject": "Math"}
        )
        self.assertEqual(set(doc["schedule"]["C1"]), {"monday", "tuesday", "wednesday", "thursday", "friday"})

    def test_partial_summary_counts_missing_lessons(self):
        request = dead_end_request()
        timetable = generate_timetable(request, EngineConfig(backtrack_budget=0))
        summary = build_summary(timetable, len(request.teachers))
        self.assertTrue(summary.endswith("5 aula(s) sem professor."))


if __name__ == "__main__":
    unittest.main()
