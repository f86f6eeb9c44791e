import unittest
from datetime import datetime

from progression import create_app, db
from progression.models import (
    CourseProgress,
    Lesson,
    LessonProgress,
    RecurringSlot,
    SchoolClass,
    Subject,
    User,
)
from config import TestConfig


class DatabaseTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.app = create_app(TestConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        db.session.remove()
        db.drop_all()
        self.app_context.pop()


class ApiTestCase(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user = User(name="Alice")
        self.stranger = User(name="Bruno")
        self.school_class = SchoolClass(user=self.user, name="6e A")
        self.subject = Subject(user=self.user, name="Maths")
        for order, label in enumerate(["Nombres", "Fractions", "Géométrie"], start=1):
            self.subject.lessons.append(
                Lesson(user=self.user, label=label, duration=60, order=order)
            )
        self.course = CourseProgress(
            user=self.user, school_class=self.school_class, subject=self.subject
        )
        self.course.recurring_slots.append(
            RecurringSlot(day_of_week=1, start_hour=8, end_hour=10, start_date=datetime(2024, 1, 1))
        )
        db.session.add_all([self.user, self.stranger, self.course])
        db.session.commit()
        self.headers = {"X-User-Id": str(self.user.id)}

    def url(self, suffix: str = "") -> str:
        return f"/api/course-progress/{self.course.id}{suffix}"

    def test_health(self) -> None:
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"status": "ok", "database": "ok"})

    def test_missing_user_header(self) -> None:
        response = self.client.get("/api/course-progress")
        self.assertEqual(response.status_code, 401)
        response = self.client.get(
            "/api/course-progress", headers={"X-User-Id": "alice"}
        )
        self.assertEqual(response.status_code, 401)

    def test_list_and_read_course_progress(self) -> None:
        response = self.client.get("/api/course-progress", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        courses = response.get_json()
        self.assertEqual(len(courses), 1)
        self.assertEqual(courses[0]["name"], "Maths (6e A)")
        self.assertEqual(courses[0]["recurring_schedule"][0]["day_of_week"], 1)

        response = self.client.get(self.url(), headers=self.headers)
        self.assertEqual(response.get_json()["id"], self.course.id)

    def test_foreign_course_is_not_found(self) -> None:
        response = self.client.get(
            self.url(), headers={"X-User-Id": str(self.stranger.id)}
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(
            response.get_json()["message"],
            "Progression de cours non trouvée ou vous n'avez pas l'autorisation d'y accéder",
        )

    def test_create_catalog_and_course(self) -> None:
        response = self.client.post(
            "/api/classes", json={"name": "5e B", "level": "5e"}, headers=self.headers
        )
        self.assertEqual(response.status_code, 201)
        class_id = response.get_json()["id"]

        response = self.client.post(
            f"/api/subjects/{self.subject.id}/lessons",
            json={"label": "Statistiques", "duration": 90, "order": 4},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 201)
        lessons = self.client.get(
            f"/api/subjects/{self.subject.id}/lessons", headers=self.headers
        ).get_json()
        self.assertEqual([lesson["label"] for lesson in lessons][-1], "Statistiques")

        response = self.client.post(
            "/api/course-progress",
            json={"class_id": class_id, "subject_id": self.subject.id},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()["status"], "not_started")

        duplicate = self.client.post(
            "/api/course-progress",
            json={"class_id": class_id, "subject_id": self.subject.id},
            headers=self.headers,
        )
        self.assertEqual(duplicate.status_code, 400)

    def test_replace_schedule(self) -> None:
        payload = {
            "recurring_schedule": [
                {"day_of_week": 2, "start_hour": 10, "end_hour": 12, "start_date": "2024-01-02"}
            ]
        }
        response = self.client.put(self.url("/schedule"), json=payload, headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.get_json()["recurring_schedule"],
            [
                {
                    "day_of_week": 2,
                    "start_hour": 10,
                    "end_hour": 12,
                    "start_date": "2024-01-02T00:00:00",
                }
            ],
        )

    def test_invalid_schedule_is_rejected_with_messages(self) -> None:
        payload = {
            "recurring_schedule": [
                {"day_of_week": 2, "start_hour": 12, "end_hour": 10, "start_date": "2024-01-02"}
            ]
        }
        response = self.client.put(self.url("/schedule"), json=payload, headers=self.headers)
        self.assertEqual(response.status_code, 400)
        body = response.get_json()
        self.assertEqual(body["message"], "Créneaux récurrents invalides")
        self.assertIn("l'heure de fin doit être après l'heure de début", body["errors"][0])
        stored = self.client.get(self.url("/schedule"), headers=self.headers).get_json()
        self.assertEqual(len(stored["recurring_schedule"]), 1)

    def test_preview_uses_stored_slots(self) -> None:
        response = self.client.post(self.url("/schedule/preview"), json={}, headers=self.headers)
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body["total_lessons"], 3)
        self.assertEqual(body["total_hours"], 3)
        self.assertEqual(body["weeks_needed"], 2)
        self.assertEqual(len(body["schedule_preview"]), 3)
        self.assertEqual(body["warnings"], [])
        self.assertEqual(LessonProgress.query.count(), 0)

    def test_preview_with_candidate_slots(self) -> None:
        response = self.client.post(
            self.url("/schedule/preview"),
            json={
                "recurring_schedule": [
                    {"day_of_week": 3, "start_hour": 8, "end_hour": 11, "start_date": "2024-01-01"}
                ]
            },
            headers=self.headers,
        )
        body = response.get_json()
        self.assertEqual(body["weeks_needed"], 1)
        self.assertTrue(all(entry["slot"] == "8h-11h" for entry in body["schedule_preview"]))

    def test_conflicts(self) -> None:
        other_subject = Subject(user=self.user, name="Histoire")
        other = CourseProgress(user=self.user, school_class=self.school_class, subject=other_subject)
        other.recurring_slots.append(
            RecurringSlot(day_of_week=1, start_hour=9, end_hour=11, start_date=datetime(2024, 1, 1))
        )
        db.session.add(other)
        db.session.commit()

        response = self.client.post(
            self.url("/schedule/conflicts"),
            json={
                "recurring_schedule": [
                    {"day_of_week": 1, "start_hour": 8, "end_hour": 10, "start_date": "2024-01-01"},
                    {"day_of_week": 1, "start_hour": 10, "end_hour": 12, "start_date": "2024-01-01"},
                ]
            },
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(len(body["conflicts"]), 2)
        self.assertEqual(body["conflicts"][0]["conflicting_course_progress_id"], str(other.id))
        self.assertEqual(body["internal_conflicts"], [])

    def test_generate_then_update_lesson_progress(self) -> None:
        response = self.client.post(
            self.url("/schedule/generate"),
            json={"options": {"regenerate_existing": False, "handle_long_lessons": "split"}},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertTrue(body["success"])
        self.assertEqual(body["generated"], 3)
        self.assertEqual(body["log"]["status"], "success")

        lessons = self.client.get(self.url("/lessons"), headers=self.headers).get_json()
        self.assertEqual(len(lessons), 3)
        self.assertTrue(all(item["status"] == "scheduled" for item in lessons))

        progress_id = lessons[0]["id"]
        response = self.client.patch(
            f"/api/lesson-progress/{progress_id}",
            json={"status": "completed"},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["status"], "completed")
        self.assertIsNotNone(response.get_json()["completed_at"])

        response = self.client.patch(
            f"/api/lesson-progress/{progress_id}",
            json={"comments": [{"title": "Bilan", "description": "Bien compris"}]},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["comments"][0]["title"], "Bilan")
        self.assertEqual(response.get_json()["status"], "completed")

        foreign = self.client.patch(
            f"/api/lesson-progress/{progress_id}",
            json={"status": "skipped"},
            headers={"X-User-Id": str(self.stranger.id)},
        )
        self.assertEqual(foreign.status_code, 404)

        events = self.client.get(
            "/api/calendar?start=2024-01-01&end=2024-01-09", headers=self.headers
        ).get_json()
        self.assertEqual(len(events), 2)

        response = self.client.delete(f"/api/lesson-progress/{progress_id}", headers=self.headers)
        self.assertEqual(response.status_code, 204)
        self.assertEqual(LessonProgress.query.count(), 2)

    def test_generate_without_slots(self) -> None:
        self.client.put(self.url("/schedule"), json={"recurring_schedule": []}, headers=self.headers)
        response = self.client.post(self.url("/schedule/generate"), json={}, headers=self.headers)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.get_json()["message"],
            "Aucun créneau horaire récurrent configuré pour ce cours",
        )

    def test_calendar_rejects_bad_bounds(self) -> None:
        response = self.client.get("/api/calendar?start=hier", headers=self.headers)
        self.assertEqual(response.status_code, 400)

    def test_delete_course_progress(self) -> None:
        response = self.client.delete(self.url(), headers=self.headers)
        self.assertEqual(response.status_code, 204)
        self.assertEqual(CourseProgress.query.count(), 0)


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    unittest.main()
