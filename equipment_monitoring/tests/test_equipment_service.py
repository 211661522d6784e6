import unittest
from datetime import date, datetime

from booking_fixtures import actor_for, add_equipment, add_user, count_rows, reset_database

from equipment_monitoring.models.equipment_models import Equipment
from equipment_monitoring.schemas.equipment import EquipmentUpsert
from equipment_monitoring.schemas.reservations import CreateReservationDto
from equipment_monitoring.services.equipment_service import (
    _parse_seq,
    create_equipment,
    delete_equipment,
    generate_next_serial_number,
    list_equipment,
    update_equipment,
)
from equipment_monitoring.services.errors import ConflictError, NotFoundError, UnauthorizedError
from equipment_monitoring.services.reservation_service import create_reservation


class SerialNumberTests(unittest.TestCase):
    def test_parse_seq(self):
        self.assertEqual(_parse_seq("EQ2025-0007"), 7)
        self.assertIsNone(_parse_seq("CAM001"))
        self.assertIsNone(_parse_seq("EQ2025-abc"))


class EquipmentRegistryTests(unittest.TestCase):
    def setUp(self):
        self.db = reset_database()
        self.admin = add_user(self.db, "root", role="admin")
        self.alice = add_user(self.db, "alice")
        self.admin_actor = actor_for(self.db, self.admin)

    def tearDown(self):
        self.db.close()

    def test_create_generates_serial_and_starts_available(self):
        prefix = f"EQ{date.today().year}-"
        add_equipment(self.db, f"{prefix}0004")

        equipment = create_equipment(self.db, EquipmentUpsert(name="Rode NTG", type="microphone"), self.admin_actor)
        self.assertEqual(equipment.SerialNumber, f"{prefix}0005")
        self.assertEqual(equipment.Status.Name, "available")
        self.assertEqual(equipment.Type.Name, "microphone")
        self.assertEqual(generate_next_serial_number(self.db), f"{prefix}0006")

    def test_duplicate_serial_conflicts(self):
        add_equipment(self.db, "CAM-001")
        with self.assertRaises(ConflictError):
            create_equipment(
                self.db,
                EquipmentUpsert(name="Second body", serialNumber="CAM-001", type="camera"),
                self.admin_actor,
            )
        self.assertEqual(count_rows(self.db, Equipment), 1)

    def test_plain_user_cannot_manage_equipment(self):
        with self.assertRaises(UnauthorizedError):
            create_equipment(self.db, EquipmentUpsert(name="Light", type="light"), actor_for(self.db, self.alice))

    def test_update_keeps_status(self):
        equipment = add_equipment(self.db, "CAM-001", status="issued")
        updated = update_equipment(
            self.db,
            equipment.EquipmentID,
            EquipmentUpsert(name="Sony A7 IV", type="camera"),
            self.admin_actor,
        )
        self.assertEqual(updated.Name, "Sony A7 IV")
        self.assertEqual(updated.SerialNumber, "CAM-001")
        self.assertEqual(updated.Status.Name, "issued")

    def test_update_unknown_equipment_is_not_found(self):
        with self.assertRaises(NotFoundError):
            update_equipment(self.db, 999, EquipmentUpsert(name="X", type="camera"), self.admin_actor)

    def test_delete_refused_while_reserved(self):
        equipment = add_equipment(self.db, "CAM-001")
        create_reservation(
            self.db,
            CreateReservationDto(
                equipmentID=equipment.EquipmentID,
                userID=self.alice.UserID,
                responsibleID=self.admin.UserID,
                startDate=datetime(2025, 1, 10, 9),
                endDate=datetime(2025, 1, 10, 11),
            ),
            self.admin_actor,
        )
        with self.assertRaises(ConflictError):
            delete_equipment(self.db, equipment.EquipmentID, self.admin_actor)
        self.assertEqual(count_rows(self.db, Equipment), 1)

    def test_delete_free_equipment(self):
        equipment = add_equipment(self.db, "CAM-001")
        delete_equipment(self.db, equipment.EquipmentID, self.admin_actor)
        self.assertEqual(count_rows(self.db, Equipment), 0)

    def test_list_filters(self):
        add_equipment(self.db, "CAM-001")
        add_equipment(self.db, "TRI-001", name="Manfrotto", type_name="tripod", status="reserved")

        self.assertEqual(list_equipment(self.db)["totalElements"], 2)
        self.assertEqual(list_equipment(self.db, status="reserved")["content"][0]["serialNumber"], "TRI-001")
        self.assertEqual(list_equipment(self.db, type_ref="camera")["content"][0]["serialNumber"], "CAM-001")
        page = list_equipment(self.db, page=1, size=1)
        self.assertEqual(page["totalPages"], 2)
        self.assertTrue(page["last"])


if __name__ == "__main__":
    unittest.main()
