import unittest
from datetime import datetime

from booking_fixtures import add_equipment, add_user, reset_database

from equipment_monitoring.models.equipment_models import Reservation
from equipment_monitoring.services.availability_service import find_overlapping, has_overlap, intervals_overlap
from equipment_monitoring.services.directory_service import resolve_reservation_status


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 1, 10, hour, minute)


class IntervalOverlapTests(unittest.TestCase):
    def test_touching_endpoints_overlap(self):
        self.assertTrue(intervals_overlap(at(10), at(12), at(12), at(14)))
        self.assertTrue(intervals_overlap(at(12), at(14), at(10), at(12)))

    def test_disjoint_intervals_do_not_overlap(self):
        self.assertFalse(intervals_overlap(at(10), at(12), at(12, 1), at(14)))

    def test_containment_overlaps(self):
        self.assertTrue(intervals_overlap(at(9), at(18), at(10), at(11)))


class HasOverlapTests(unittest.TestCase):
    def setUp(self):
        self.db = reset_database()
        self.user = add_user(self.db, "alice")
        self.camera = add_equipment(self.db, "CAM-001")
        self.tripod = add_equipment(self.db, "TRI-001", name="Manfrotto", type_name="tripod")
        self.existing = Reservation(
            EquipmentID=self.camera.EquipmentID,
            UserID=self.user.UserID,
            ResponsibleID=self.user.UserID,
            StartDate=at(10),
            EndDate=at(12),
            StatusReservationID=resolve_reservation_status(self.db, "pending").StatusReservationID,
        )
        self.db.add(self.existing)
        self.db.commit()

    def tearDown(self):
        self.db.close()

    def test_touching_request_conflicts(self):
        self.assertTrue(has_overlap(self.db, self.camera.EquipmentID, at(12), at(14)))
        self.assertTrue(has_overlap(self.db, self.camera.EquipmentID, at(8), at(10)))

    def test_free_window_is_available(self):
        self.assertFalse(has_overlap(self.db, self.camera.EquipmentID, at(12, 1), at(14)))
        self.assertFalse(has_overlap(self.db, self.camera.EquipmentID, at(7), at(9, 59)))

    def test_other_equipment_is_not_considered(self):
        self.assertFalse(has_overlap(self.db, self.tripod.EquipmentID, at(10), at(12)))

    def test_excluded_reservation_is_ignored(self):
        self.assertFalse(
            has_overlap(self.db, self.camera.EquipmentID, at(11), at(13), self.existing.ReservationID)
        )

    def test_find_overlapping_returns_rows(self):
        rows = find_overlapping(self.db, self.camera.EquipmentID, at(11), at(15))
        self.assertEqual([row.ReservationID for row in rows], [self.existing.ReservationID])


if __name__ == "__main__":
    unittest.main()
