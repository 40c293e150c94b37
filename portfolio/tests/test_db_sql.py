import unittest

from portfolio.db import (
    InMemoryContentStore,
    ProjectRow,
    SqlContentStore,
    dump_tech_stack,
    load_tech_stack,
)
from portfolio.errors import NotFoundError, StorageError, ValidationError


class SqlContentStoreTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL store.
    """

    def setUp(self):
        self.db = SqlContentStore("sqlite+pysqlite:///:memory:")
        self.db.open()
        self.addCleanup(self.db.close)

    def test_project_round_trip_preserves_tag_order(self):
        fields = {
            "title": "Portfolio",
            "short_description": "Short",
            "full_description": None,
            "tech_stack": ["Python", "FastAPI", "Alpine.js"],
            "demo_url": "https://demo.example",
            "repo_url": None,
        }
        created = self.db.create_project(fields, image_url="/uploads/x.png")
        self.assertIsInstance(created.id, int)
        self.assertIsNotNone(created.created_at)

        listed = self.db.list_projects()
        self.assertEqual(len(listed), 1)
        self.assertEqual(listed[0], created)
        self.assertEqual(listed[0].tech_stack, ["Python", "FastAPI", "Alpine.js"])
        self.assertEqual(listed[0].image_url, "/uploads/x.png")

    def test_tech_stack_is_stored_as_json_text(self):
        self.db.create_project({"title": "T", "tech_stack": ["a", "b"]})
        with self.db.Session() as session:
            row = session.query(ProjectRow).one()
            self.assertEqual(row.tech_stack, '["a", "b"]')

    def test_list_projects_newest_first(self):
        for title in ("one", "two", "three"):
            self.db.create_project({"title": title})
        self.assertEqual(
            [p.title for p in self.db.list_projects()], ["three", "two", "one"]
        )

    def test_create_project_requires_title(self):
        with self.assertRaises(ValidationError):
            self.db.create_project({"title": ""})
        self.assertEqual(self.db.list_projects(), [])

    def test_update_project(self):
        created = self.db.create_project(
            {"title": "Old", "tech_stack": ["x"]}, image_url="/uploads/old.png"
        )
        updated = self.db.update_project(
            str(created.id), {"title": "New", "tech_stack": ["y", "z"]}
        )
        self.assertEqual(updated.title, "New")
        self.assertEqual(updated.tech_stack, ["y", "z"])
        self.assertEqual(updated.image_url, "/uploads/old.png")

        with self.assertRaises(NotFoundError):
            self.db.update_project("404", {"title": "Missing"})

    def test_delete_project(self):
        created = self.db.create_project({"title": "Gone soon"})
        self.assertTrue(self.db.delete_project(str(created.id)))
        self.assertEqual(self.db.list_projects(), [])
        self.assertFalse(self.db.delete_project(str(created.id)))
        self.assertFalse(self.db.delete_project("not-a-number"))

    def test_certificate_defaults(self):
        created = self.db.create_certificate({"title": "CKA", "issuer": "CNCF"})
        self.assertEqual(created.status, "Completed")
        self.assertEqual(created.progress_percent, 100)

    def test_certificate_with_invalid_status_is_not_persisted(self):
        with self.assertRaises(ValidationError):
            self.db.create_certificate({"title": "CKA", "status": "Dropped"})
        with self.assertRaises(ValidationError):
            self.db.create_certificate({"title": "CKA", "progress_percent": 101})
        self.assertEqual(self.db.list_certificates(), [])

    def test_certificates_listed_oldest_first(self):
        for title in ("a", "b"):
            self.db.create_certificate(
                {"title": title, "status": "In Progress", "progress_percent": 10}
            )
        self.assertEqual([c.title for c in self.db.list_certificates()], ["a", "b"])

    def test_delete_certificate(self):
        created = self.db.create_certificate({"title": "Temp"})
        self.assertTrue(self.db.delete_certificate(str(created.id)))
        self.assertFalse(self.db.delete_certificate(str(created.id)))

    def test_admin_records(self):
        self.assertEqual(self.db.count_admins(), 0)
        self.assertIsNone(self.db.get_admin("admin"))
        admin = self.db.create_admin("admin", "hash")
        self.assertEqual(self.db.get_admin("admin"), admin)
        self.assertEqual(self.db.count_admins(), 1)

        with self.assertRaises(StorageError):
            self.db.create_admin("admin", "other-hash")


class CsvTechStackTests(unittest.TestCase):
    def test_csv_format_round_trips(self):
        db = SqlContentStore("sqlite+pysqlite:///:memory:", tech_stack_format="csv")
        db.open()
        self.addCleanup(db.close)

        db.create_project({"title": "CSV", "tech_stack": ["Go", "gRPC", "Redis"]})
        with db.Session() as session:
            self.assertEqual(session.query(ProjectRow).one().tech_stack, "Go,gRPC,Redis")
        self.assertEqual(db.list_projects()[0].tech_stack, ["Go", "gRPC", "Redis"])

    def test_csv_rejects_tags_it_cannot_round_trip(self):
        for tags in (["a,b"], ["a", ""], [" padded"], ['["x"]']):
            with self.assertRaises(ValidationError):
                dump_tech_stack(tags, "csv")

    def test_json_keeps_tags_exactly(self):
        tags = ["C++ ", " Go", ""]
        self.assertEqual(load_tech_stack(dump_tech_stack(tags)), tags)

    def test_configured_format_is_tried_first(self):
        self.assertEqual(load_tech_stack("[1]", "csv"), ["[1]"])
        self.assertEqual(load_tech_stack("[1]"), ["[1]"])
        self.assertEqual(load_tech_stack('["x", "y"]', "csv"), ["x", "y"])
        self.assertEqual(load_tech_stack("x,y", "csv"), ["x", "y"])

    def test_load_reads_either_format(self):
        self.assertEqual(load_tech_stack('["x", "y"]'), ["x", "y"])
        self.assertEqual(load_tech_stack("x, y"), ["x", "y"])
        self.assertEqual(load_tech_stack(None), [])
        self.assertEqual(load_tech_stack(""), [])


class InMemoryContentStoreTests(unittest.TestCase):
    def test_reset_clears_everything(self):
        db = InMemoryContentStore()
        db.create_project({"title": "p"})
        db.create_certificate({"title": "c"})
        db.create_admin("admin", "hash")
        db.reset()
        self.assertEqual(db.list_projects(), [])
        self.assertEqual(db.list_certificates(), [])
        self.assertEqual(db.count_admins(), 0)

    def test_duplicate_admin_is_rejected(self):
        db = InMemoryContentStore()
        db.create_admin("admin", "hash")
        with self.assertRaises(StorageError):
            db.create_admin("admin", "hash")


if __name__ == "__main__":
    unittest.main()
