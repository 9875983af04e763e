import unittest
from datetime import date

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gridlog.db import Base, get_db, init_db
from gridlog.main import app
from gridlog.overrides import slot_edit_payload


def session_payload(**grid_overrides):
    first = {
        "slot_number": 1,
        "include_in_session": True,
        "sample_name": "apoferritin",
        "sample_concentration": "2 mg/ml",
        "blot_force_override": "0",
    }
    first.update(grid_overrides)
    return {
        "session": {"user_name": "alice", "date": date.today().isoformat(), "grid_box_name": "Box7", "puck_position": "3"},
        "vitrobot_settings": {
            "humidity_percent": "95",
            "temperature_c": "4",
            "blot_force": "5",
            "blot_time_seconds": "3.5",
            "glow_discharge_applied": "true",
        },
        "grid_info": {"grid_type": "Quantifoil R1.2/1.3", "grid_batch": "B42"},
        "grids": [
            first,
            {"slot_number": 2, "include_in_session": False},
            {"slot_number": 3, "include_in_session": True, "sample_name": "apoferritin", "comments": "thin ice"},
            {"slot_number": 4, "include_in_session": False},
        ],
    }


class ApiTestCase(unittest.TestCase):

    def setUp(self):
        self.engine = create_engine(
            "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
        init_db(self.engine)
        TestingSession = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

        def override_get_db():
            db = TestingSession()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=self.engine)
        self.engine.dispose()

    def create_session(self, payload=None):
        r = self.client.post("/api/sessions", json=payload or session_payload())
        self.assertEqual(r.status_code, 201, r.text)
        return r.json()["session_id"]


class TestSessions(ApiTestCase):

    def test_invalid_payload_is_rejected(self):
        payload = session_payload()
        payload["session"]["user_name"] = ""
        payload["grids"][1]["slot_number"] = "not a number"
        r = self.client.post("/api/sessions", json=payload)
        self.assertEqual(r.status_code, 400)
        body = r.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["message"], "Validation failed")
        self.assertIn("Session: user_name is required", body["errors"])
        self.assertIn("Grid 2: slot_number must be a valid integer", body["errors"])
        self.assertEqual(self.client.get("/api/sessions").json(), [])

    def test_missing_session_section(self):
        payload = session_payload()
        del payload["session"]
        r = self.client.post("/api/sessions", json=payload)
        self.assertEqual(r.status_code, 400)
        self.assertIn("Session: user_name is required", r.json()["errors"])
        self.assertIn("Session: date is required", r.json()["errors"])

    def test_slots_outside_the_box_are_rejected(self):
        payload = session_payload()
        payload["grids"] = [
            {"slot_number": 1, "include_in_session": True, "sample_name": "apoferritin"},
            {"slot_number": 7, "include_in_session": True, "sample_name": "apoferritin"},
            {"slot_number": 3, "include_in_session": True, "sample_name": "apoferritin"},
            {"slot_number": 1, "include_in_session": True, "sample_name": "GroEL"},
        ]
        r = self.client.post("/api/sessions", json=payload)
        self.assertEqual(r.status_code, 400)
        errors = r.json()["errors"]
        self.assertIn("Grid 2: slot_number must be between 1 and 4", errors)
        self.assertIn("Grid 4: duplicate slot 1", errors)
        self.assertEqual(self.client.get("/api/sessions").json(), [])
        self.assertEqual(self.client.get("/api/samples").json(), [])

        session_id = self.create_session()
        r = self.client.put(f"/api/sessions/{session_id}", json=payload)
        self.assertEqual(r.status_code, 400)
        slots = self.client.get(f"/api/sessions/{session_id}").json()["slots"]
        self.assertEqual([s["used"] for s in slots], [True, False, True, False])

    def test_edit_one_slot(self):
        session_id = self.create_session()
        detail = self.client.get(f"/api/sessions/{session_id}").json()
        form = {"blot_force": "5", "blot_time_seconds": "6", "volume_ul": "", "additives": "",
                "grid_batch": "B42", "comments": "re-blotted"}
        r = self.client.put(f"/api/sessions/{session_id}", json=slot_edit_payload(detail, 1, form))
        self.assertEqual(r.status_code, 200, r.text)

        detail = self.client.get(f"/api/sessions/{session_id}").json()
        first = next(g for g in detail["grids"] if g["slot_number"] == 1)
        self.assertIsNone(first["blot_force_override"])
        self.assertEqual(first["blot_time_override"], 6.0)
        self.assertIsNone(first["grid_batch_override"])
        slots = detail["slots"]
        self.assertEqual(slots[0]["blot_force"], 5)
        self.assertEqual(slots[0]["blot_time"], 6.0)
        self.assertEqual(slots[0]["comments"], "re-blotted")
        self.assertEqual(slots[2]["blot_time"], 3.5)
        self.assertEqual(slots[2]["comments"], "thin ice")
        self.assertEqual([s["used"] for s in slots], [True, False, True, False])

    def test_create_and_read_back(self):
        session_id = self.create_session()
        r = self.client.get(f"/api/sessions/{session_id}")
        self.assertEqual(r.status_code, 200)
        detail = r.json()

        self.assertEqual(detail["session"]["puck_position"], 3)
        self.assertEqual(detail["settings"]["humidity_percent"], 95.0)
        self.assertIs(detail["settings"]["glow_discharge_applied"], True)
        self.assertEqual(len(detail["grids"]), 2)

        slots = detail["slots"]
        self.assertEqual([s["slot_number"] for s in slots], [1, 2, 3, 4])
        self.assertEqual(slots[0]["blot_force"], 0)
        self.assertEqual(slots[0]["blot_time"], 3.5)
        self.assertEqual(slots[0]["grid_type"], "Quantifoil R1.2/1.3")
        self.assertEqual(slots[0]["sample_name"], "apoferritin")
        self.assertEqual(slots[0]["comments"], "No comments")
        self.assertEqual(slots[1]["label"], "Slot not used")
        self.assertEqual(slots[2]["blot_force"], 5)
        self.assertEqual(slots[2]["comments"], "thin ice")

        samples = self.client.get("/api/samples").json()
        self.assertEqual([s["sample_name"] for s in samples], ["apoferritin"])

    def test_list_sessions(self):
        self.create_session()
        sessions = self.client.get("/api/sessions").json()
        self.assertEqual(len(sessions), 1)
        self.assertEqual(sessions[0]["grid_count"], 2)
        self.assertEqual(sessions[0]["sample_names"], "apoferritin")
        self.assertFalse(sessions[0]["trashed"])
        self.assertEqual(len(self.client.get("/api/users/alice/sessions").json()), 1)
        self.assertEqual(self.client.get("/api/users/bob/sessions").json(), [])

    def test_unknown_session(self):
        self.assertEqual(self.client.get("/api/sessions/999").status_code, 404)
        self.assertEqual(self.client.delete("/api/sessions/999").status_code, 404)

    def test_trash_all_grids_survives_update(self):
        session_id = self.create_session()
        r = self.client.patch(f"/api/sessions/{session_id}/trash-all-grids")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["affected_rows"], 2)
        self.assertTrue(self.client.get("/api/sessions").json()[0]["trashed"])

        r = self.client.put(f"/api/sessions/{session_id}", json=session_payload(comments="re-blotted"))
        self.assertEqual(r.status_code, 200, r.text)
        slots = self.client.get(f"/api/sessions/{session_id}").json()["slots"]
        self.assertEqual(slots[0]["comments"], "re-blotted")
        self.assertEqual(slots[0]["label"], "Trashed")
        self.assertEqual(slots[2]["label"], "Trashed")

    def test_delete(self):
        session_id = self.create_session()
        self.assertEqual(self.client.delete(f"/api/sessions/{session_id}").status_code, 200)
        self.assertEqual(self.client.get(f"/api/sessions/{session_id}").status_code, 404)

    def test_add_grid_to_free_slot(self):
        session_id = self.create_session()
        r = self.client.post(f"/api/sessions/{session_id}/grid-preparations", json={"slot_number": 2})
        self.assertEqual(r.status_code, 201, r.text)
        r = self.client.post(f"/api/sessions/{session_id}/grid-preparations", json={"slot_number": 1})
        self.assertEqual(r.status_code, 400)
        r = self.client.post(f"/api/sessions/{session_id}/grid-preparations", json={"slot_number": 5})
        self.assertEqual(r.status_code, 400)
        slots = self.client.get(f"/api/sessions/{session_id}").json()["slots"]
        self.assertTrue(slots[1]["used"])


class TestGridPreparations(ApiTestCase):

    def test_trash_and_ship(self):
        session_id = self.create_session()
        prep_id = self.client.get(f"/api/sessions/{session_id}").json()["slots"][0]["prep_id"]

        self.assertEqual(self.client.patch(f"/api/grid-preparations/{prep_id}/ship").status_code, 200)
        slot = self.client.get(f"/api/sessions/{session_id}").json()["slots"][0]
        self.assertEqual(slot["label"], "Shipped")

        self.client.patch(f"/api/grid-preparations/{prep_id}/unship")
        self.client.patch(f"/api/grid-preparations/{prep_id}/trash")
        slot = self.client.get(f"/api/sessions/{session_id}").json()["slots"][0]
        self.assertEqual(slot["label"], "Trashed")

        self.client.patch(f"/api/grid-preparations/{prep_id}/untrash")
        slot = self.client.get(f"/api/sessions/{session_id}").json()["slots"][0]
        self.assertEqual(slot["label"], "In use")

    def test_unknown_preparation(self):
        r = self.client.patch("/api/grid-preparations/999/trash")
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.json()["detail"], "Grid preparation not found")


class TestSamplesAndGridTypes(ApiTestCase):

    def test_create_sample(self):
        r = self.client.post("/api/samples", json={"sample_name": " GroEL ", "buffer": "HEPES"})
        self.assertEqual(r.status_code, 201)
        self.assertEqual(r.json()["sample_name"], "GroEL")
        self.assertEqual(self.client.post("/api/samples", json={"sample_name": "GroEL"}).status_code, 400)
        self.assertEqual(len(self.client.get("/api/samples", params={"name": "gro"}).json()), 1)

    def test_invalid_sample(self):
        r = self.client.post("/api/samples", json={"buffer": "HEPES"})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["errors"], ["sample_name is required"])

    def test_batch_usage(self):
        r = self.client.post("/api/grid-types", json={
            "grid_type_name": "Quantifoil R1.2/1.3", "grid_batch": "B42", "quantity": "100",
        })
        self.assertEqual(r.status_code, 201, r.text)
        grid_type_id = r.json()["grid_type_id"]
        self.create_session()

        batches = self.client.get(
            "/api/grid-types/batches", params={"grid_type_name": "Quantifoil R1.2/1.3"}
        ).json()
        self.assertEqual(batches[0]["used_grids"], 2)
        self.assertEqual(batches[0]["remaining_grids"], 98)

        self.client.patch(f"/api/grid-types/{grid_type_id}/empty")
        batches = self.client.get(
            "/api/grid-types/batches", params={"grid_type_name": "Quantifoil R1.2/1.3"}
        ).json()
        self.assertEqual(batches[0]["remaining_grids"], 0)

    def test_duplicate_grid_type(self):
        payload = {"grid_type_name": "C-flat", "grid_batch": "7"}
        self.assertEqual(self.client.post("/api/grid-types", json=payload).status_code, 201)
        self.assertEqual(self.client.post("/api/grid-types", json=payload).status_code, 400)


class TestMicroscopeSessions(ApiTestCase):

    def test_grid_identifier_links_preparation(self):
        session_id = self.create_session()
        prep_id = self.client.get(f"/api/sessions/{session_id}").json()["slots"][0]["prep_id"]

        r = self.client.post("/api/microscope-sessions", json={
            "date": "2024-05-02",
            "microscope": "Krios",
            "overnight": "true",
            "details": [
                {"microscope_slot": 1, "grid_identifier": "Box7g01", "collected": True, "ice_quality": "4"},
                {"microscope_slot": 2, "grid_identifier": "Other3g01"},
            ],
        })
        self.assertEqual(r.status_code, 201, r.text)
        self.assertEqual(r.json()["slots"], [1, 2])

        detail = self.client.get(f"/api/microscope-sessions/{r.json()['id']}").json()
        self.assertEqual(detail["grid_count"], 2)
        self.assertEqual(detail["details"][0]["prep_id"], prep_id)
        self.assertEqual(detail["details"][0]["user_name"], "alice")
        self.assertEqual(detail["details"][0]["sample_name"], "apoferritin")
        self.assertIsNone(detail["details"][1]["prep_id"])

        self.assertEqual(self.client.get("/api/microscope-sessions/microscopes").json(), ["Krios"])
        self.assertEqual(self.client.get("/api/microscope-sessions").json()[0]["grid_count"], 2)

    def test_invalid_microscope_session(self):
        r = self.client.post("/api/microscope-sessions", json={
            "date": "not a date",
            "microscope": "Krios",
            "details": [{"microscope_slot": 1, "grid_identifier": ""}],
        })
        self.assertEqual(r.status_code, 400)
        self.assertIn("Microscope Session: date must be a valid date (YYYY-MM-DD)", r.json()["errors"])
        self.assertIn("Slot Detail 1: grid_identifier is required", r.json()["errors"])


class TestBlog(ApiTestCase):

    def create_post(self, **fields):
        post = {"title": "Ice thickness: notes!", "content": "<p>Blot longer</p>", "category": "Protocols", "author": "alice"}
        post.update(fields)
        r = self.client.post("/api/blog", json=post)
        self.assertEqual(r.status_code, 201, r.text)
        return r.json()

    def test_create_and_list(self):
        post = self.create_post()
        self.assertEqual(post["slug"], "ice-thickness-notes")
        self.assertEqual(post["excerpt"], "Blot longer")
        self.assertEqual(post["last_modified_by"], "alice")
        self.assertEqual(self.create_post(author="bob")["slug"], "ice-thickness-notes-1")
        self.create_post(title="Grid clipping", category="Hardware", content="x" * 400)

        posts = self.client.get("/api/blog").json()
        self.assertEqual(len(posts), 3)
        long_post = next(p for p in posts if p["slug"] == "grid-clipping")
        self.assertEqual(long_post["excerpt"], "x" * 300 + "...")
        self.assertNotIn("content", long_post)
        self.assertEqual(self.client.get("/api/blog/categories").json(), ["Hardware", "Protocols"])
        self.assertEqual(self.client.get("/api/blog/authors").json(), ["alice", "bob"])

    def test_update_keeps_slug(self):
        self.create_post()
        r = self.client.put("/api/blog/ice-thickness-notes", json={"title": "Thin ice", "last_modified_by": "carol"})
        self.assertEqual(r.status_code, 200, r.text)
        post = self.client.get("/api/blog/ice-thickness-notes").json()
        self.assertEqual(post["title"], "Thin ice")
        self.assertEqual(post["content"], "<p>Blot longer</p>")
        self.assertEqual(post["author"], "alice")
        self.assertEqual(post["last_modified_by"], "carol")

        r = self.client.put("/api/blog/ice-thickness-notes", json={"category": "  "})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["errors"], ["category is required"])

    def test_invalid_post(self):
        r = self.client.post("/api/blog", json={"title": "Untitled", "content": "   "})
        self.assertEqual(r.status_code, 400)
        errors = r.json()["errors"]
        self.assertIn("content is required", errors)
        self.assertIn("category is required", errors)
        self.assertIn("author is required", errors)
        self.assertEqual(self.client.get("/api/blog").json(), [])

    def test_delete_and_missing(self):
        self.create_post()
        self.assertEqual(self.client.delete("/api/blog/ice-thickness-notes").status_code, 200)
        r = self.client.get("/api/blog/ice-thickness-notes")
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.json()["detail"], "Blog post not found")
        self.assertEqual(self.client.put("/api/blog/nope", json={"title": "x"}).status_code, 404)
        self.assertEqual(self.client.delete("/api/blog/nope").status_code, 404)


class TestHealth(ApiTestCase):

    def test_health(self):
        r = self.client.get("/api/health")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["status"], "healthy")

    def test_dashboard(self):
        self.create_session()
        body = self.client.get("/api/dashboard").json()
        self.assertEqual(body["stats"]["total_sessions"], 1)
        self.assertEqual(body["stats"]["total_grids"], 2)
        self.assertEqual(body["stats"]["active_users"], 1)
        self.assertEqual(len(body["recent_sessions"]), 1)


if __name__ == "__main__":
    unittest.main()
