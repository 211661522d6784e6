import unittest

import booking_fixtures  # noqa: F401

from equipment_monitoring.services.directory_service import HISTORY_STATUSES, RESERVATION_STATUSES
from equipment_monitoring.services.lifecycle import (
    HISTORY_EQUIPMENT_EFFECTS,
    TERMINAL_STATUSES,
    TRANSITIONS,
    effect_for,
    held_equipment_status,
    is_terminal,
)


class TransitionTableTests(unittest.TestCase):
    def test_every_reservation_status_has_an_effect(self):
        self.assertEqual(set(TRANSITIONS), set(RESERVATION_STATUSES))

    def test_terminal_statuses_match_history_dictionary(self):
        self.assertEqual(TERMINAL_STATUSES, set(HISTORY_STATUSES))

    def test_terminal_statuses_archive_and_delete(self):
        for name in TERMINAL_STATUSES:
            effect = effect_for(name)
            self.assertTrue(effect.writes_history, name)
            self.assertTrue(effect.deletes_reservation, name)
            self.assertIn(effect.equipment_status, {"available", "issued"}, name)
            self.assertTrue(is_terminal(name))

    def test_live_statuses_drive_equipment(self):
        self.assertEqual(effect_for("issued").equipment_status, "issued")
        self.assertEqual(effect_for("pending").equipment_status, "reserved")
        self.assertEqual(effect_for("Confirmed").equipment_status, "reserved")
        for name in ("pending", "confirmed", "issued"):
            self.assertFalse(effect_for(name).writes_history)
            self.assertFalse(effect_for(name).deletes_reservation)
            self.assertFalse(is_terminal(name))

    def test_terminal_fallbacks(self):
        self.assertEqual(effect_for("cancelled").equipment_status, "available")
        self.assertEqual(effect_for("rejected").equipment_status, "available")
        self.assertEqual(effect_for("not_returned").equipment_status, "issued")

    def test_held_status_follows_remaining_reservations(self):
        self.assertIsNone(held_equipment_status([]))
        self.assertEqual(held_equipment_status(["pending", "confirmed"]), "reserved")
        self.assertEqual(held_equipment_status(["pending", "issued"]), "issued")

    def test_unknown_status_is_rejected(self):
        with self.assertRaises(KeyError):
            effect_for("lost")

    def test_history_equipment_rule(self):
        self.assertEqual(HISTORY_EQUIPMENT_EFFECTS, {"not_returned": "issued", "returned": "available"})


if __name__ == "__main__":
    unittest.main()
