import unittest

from gridlog.overrides import (
    derive_overrides,
    is_grid_box_trashed,
    parse_grid_identifier,
    resolve,
    resolve_grid_box,
    resolve_slot,
    slot_edit_payload,
)

SETTINGS = {"blot_force": 0, "blot_time_seconds": 4.0}
GRID_INFO = {"grid_type": "Quantifoil R1.2/1.3", "grid_batch": "B42"}
SAMPLE = {"sample_name": "apoferritin", "additives": "0.01% DDM", "default_volume_ul": "3"}


class TestResolve(unittest.TestCase):

    def test_first_non_empty_candidate_wins(self):
        self.assertEqual(resolve(None, "", "x", "y"), "x")

    def test_zero_and_false_are_values(self):
        self.assertEqual(resolve(0, 5), 0)
        self.assertIs(resolve(False, True), False)

    def test_default(self):
        self.assertEqual(resolve(None, ""), "N/A")
        self.assertIsNone(resolve(None, default=None))


class TestResolveSlot(unittest.TestCase):

    def test_zero_override_beats_default(self):
        slot = {"slot_number": 1, "include_in_session": True, "blot_force_override": 0}
        resolved = resolve_slot(slot, {"blot_force": 5})
        self.assertEqual(resolved.blot_force, 0)

    def test_settings_fill_missing_values(self):
        slot = {"slot_number": 2, "include_in_session": True, "blot_time_override": None}
        resolved = resolve_slot(slot, SETTINGS, GRID_INFO, SAMPLE)
        self.assertEqual(resolved.blot_time, 4.0)
        self.assertEqual(resolved.blot_force, 0)
        self.assertEqual(resolved.grid_type, "Quantifoil R1.2/1.3")
        self.assertEqual(resolved.grid_batch, "B42")
        self.assertEqual(resolved.volume, "3")
        self.assertEqual(resolved.additives, "0.01% DDM")
        self.assertEqual(resolved.comments, "No comments")
        self.assertEqual(resolved.label, "In use")

    def test_overrides_take_precedence(self):
        slot = {
            "slot_number": 3,
            "include_in_session": 1,
            "blot_time_override": 6.5,
            "volume_ul_override": "2.5",
            "grid_batch_override": "B43",
            "additives_override": "none",
            "comments": "thick ice",
        }
        resolved = resolve_slot(slot, SETTINGS, GRID_INFO, SAMPLE)
        self.assertEqual(resolved.blot_time, 6.5)
        self.assertEqual(resolved.volume, "2.5")
        self.assertEqual(resolved.grid_batch, "B43")
        self.assertEqual(resolved.additives, "none")
        self.assertEqual(resolved.comments, "thick ice")

    def test_missing_everywhere_is_not_available(self):
        resolved = resolve_slot({"slot_number": 1, "include_in_session": True})
        self.assertEqual(resolved.blot_time, "N/A")
        self.assertEqual(resolved.grid_type, "N/A")

    def test_unused_slot(self):
        resolved = resolve_slot({"slot_number": 4, "include_in_session": False, "blot_force_override": 3}, SETTINGS)
        self.assertFalse(resolved.used)
        self.assertEqual(resolved.label, "Slot not used")
        self.assertIsNone(resolved.blot_force)

    def test_trashed_and_shipped_labels(self):
        trashed = resolve_slot({"slot_number": 1, "include_in_session": True, "trashed": True})
        shipped = resolve_slot({"slot_number": 1, "include_in_session": True, "shipped": 1})
        self.assertEqual(trashed.label, "Trashed")
        self.assertEqual(shipped.label, "Shipped")
        self.assertEqual(trashed.to_dict()["label"], "Trashed")


class TestGridBox(unittest.TestCase):

    def test_four_slots_always_rendered(self):
        detail = {
            "settings": SETTINGS,
            "grid_info": GRID_INFO,
            "grids": [{"slot_number": 3, "include_in_session": True}],
        }
        slots = resolve_grid_box(detail)
        self.assertEqual([s.slot_number for s in slots], [1, 2, 3, 4])
        self.assertEqual([s.used for s in slots], [False, False, True, False])
        self.assertEqual(slots[2].blot_time, 4.0)

    def test_trashed_box(self):
        self.assertFalse(is_grid_box_trashed([]))
        self.assertTrue(is_grid_box_trashed([
            {"include_in_session": True, "trashed": True},
            {"include_in_session": False, "trashed": False},
        ]))
        self.assertFalse(is_grid_box_trashed([
            {"include_in_session": True, "trashed": True},
            {"include_in_session": True, "trashed": False},
        ]))


class TestDeriveOverrides(unittest.TestCase):

    def test_values_equal_to_defaults_are_dropped(self):
        form = {"blot_force": "0", "blot_time_seconds": "4", "volume_ul": "3", "additives": "0.01% DDM", "grid_batch": "B42"}
        self.assertEqual(
            derive_overrides(form, SETTINGS, GRID_INFO, SAMPLE),
            {
                "blot_force_override": None,
                "blot_time_override": None,
                "volume_ul_override": None,
                "additives_override": None,
                "grid_batch_override": None,
            },
        )

    def test_changed_values_become_overrides(self):
        form = {"blot_force": "-3", "blot_time_seconds": "5.5", "volume_ul": "2", "additives": "", "grid_batch": "B43"}
        overrides = derive_overrides(form, SETTINGS, GRID_INFO, SAMPLE)
        self.assertEqual(overrides["blot_force_override"], -3)
        self.assertEqual(overrides["blot_time_override"], 5.5)
        self.assertEqual(overrides["volume_ul_override"], "2")
        self.assertIsNone(overrides["additives_override"])
        self.assertEqual(overrides["grid_batch_override"], "B43")


class TestSlotEditPayload(unittest.TestCase):

    DETAIL = {
        "session": {"session_id": 9, "user_name": "alice", "date": "2024-03-01", "grid_box_name": "Box7"},
        "settings": {"settings_id": 4, "session_id": 9, **SETTINGS},
        "grid_info": {"grid_id": 2, **GRID_INFO},
        "grids": [
            {"prep_id": 11, "slot_number": 1, "include_in_session": True, "sample_name": "apoferritin",
             "additives": "0.01% DDM", "default_volume_ul": "3", "blot_force_override": -2, "trashed": False},
            {"prep_id": 12, "slot_number": 2, "include_in_session": False},
            {"prep_id": 13, "slot_number": 3, "include_in_session": True, "sample_name": "GroEL",
             "comments": "thin ice", "grid_batch_override": "B43"},
        ],
        "slots": [],
    }

    def test_only_the_edited_slot_changes(self):
        form = {"blot_force": "0", "blot_time_seconds": "6", "volume_ul": "3", "additives": "0.01% DDM",
                "grid_batch": "B42", "comments": "re-blotted"}
        payload = slot_edit_payload(self.DETAIL, 1, form)

        self.assertEqual(payload["session"], {"user_name": "alice", "date": "2024-03-01", "grid_box_name": "Box7"})
        self.assertEqual(payload["vitrobot_settings"], SETTINGS)
        self.assertEqual(payload["grid_info"], GRID_INFO)
        self.assertEqual([g["slot_number"] for g in payload["grids"]], [1, 3])

        edited, other = payload["grids"]
        self.assertIsNone(edited["blot_force_override"])
        self.assertEqual(edited["blot_time_override"], 6.0)
        self.assertIsNone(edited["volume_ul_override"])
        self.assertIsNone(edited["additives_override"])
        self.assertIsNone(edited["grid_batch_override"])
        self.assertEqual(edited["comments"], "re-blotted")
        self.assertNotIn("prep_id", edited)
        self.assertNotIn("trashed", edited)

        self.assertEqual(other, {
            "slot_number": 3, "include_in_session": True, "sample_name": "GroEL",
            "comments": "thin ice", "grid_batch_override": "B43",
        })

    def test_comments_kept_when_form_has_none(self):
        payload = slot_edit_payload(self.DETAIL, 3, {"grid_batch": "B44"})
        edited = payload["grids"][1]
        self.assertEqual(edited["comments"], "thin ice")
        self.assertEqual(edited["grid_batch_override"], "B44")


class TestGridIdentifier(unittest.TestCase):

    def test_parse(self):
        self.assertEqual(parse_grid_identifier("Box7g02"), ("Box7", 2))
        self.assertEqual(parse_grid_identifier("AB12g12"), ("AB12", 12))
        self.assertEqual(parse_grid_identifier("Box7g4"), ("Box7", 4))

    def test_invalid(self):
        for value in ("Box7", "Box7g13", "Box7g00", "g01", None):
            with self.subTest(value=value):
                self.assertIsNone(parse_grid_identifier(value))


if __name__ == "__main__":
    unittest.main()
