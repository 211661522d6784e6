import unittest

from booking_fixtures import TEST_PASSWORD, add_user, reset_database

from equipment_monitoring.models.equipment_models import User
from equipment_monitoring.services.access_service import (
    MANAGE_HISTORY,
    MANAGE_RESERVATIONS,
    RESERVE,
    Actor,
    authenticate_user,
    build_session_payload,
    create_session,
    get_session,
    has_capability,
    remove_session,
    require_capability,
    set_password,
)
from equipment_monitoring.services.errors import UnauthorizedError


class CapabilityTests(unittest.TestCase):
    def test_role_rights(self):
        self.assertTrue(has_capability({"user"}, RESERVE))
        self.assertFalse(has_capability({"user"}, MANAGE_RESERVATIONS))
        self.assertTrue(has_capability({"Studio"}, MANAGE_RESERVATIONS))
        self.assertTrue(has_capability({"user", "admin"}, MANAGE_HISTORY))
        self.assertFalse(has_capability(set(), RESERVE))

    def test_require_capability_raises(self):
        with self.assertRaises(UnauthorizedError) as ctx:
            require_capability(Actor(user_id=1, roles=frozenset({"user"})), MANAGE_RESERVATIONS)
        self.assertEqual(ctx.exception.status_code, 401)

    def test_actor_from_session(self):
        actor = Actor.from_session({"userID": "7", "username": "alice", "roles": ["Admin"]})
        self.assertEqual(actor.user_id, 7)
        self.assertEqual(actor.roles, frozenset({"admin"}))


class PasswordAndSessionTests(unittest.TestCase):
    def setUp(self):
        self.db = reset_database()
        self.user = add_user(self.db, "alice", role="studio")

    def tearDown(self):
        self.db.close()

    def test_authenticate(self):
        self.assertEqual(authenticate_user(self.db, " Alice ", TEST_PASSWORD).UserID, self.user.UserID)
        self.assertIsNone(authenticate_user(self.db, "alice", "wrong-pass"))
        self.assertIsNone(authenticate_user(self.db, "", TEST_PASSWORD))

    def test_inactive_user_cannot_authenticate(self):
        self.user.IsActive = False
        self.db.commit()
        self.assertIsNone(authenticate_user(self.db, "alice", TEST_PASSWORD))

    def test_short_password_rejected(self):
        with self.assertRaises(ValueError):
            set_password(User(Username="bob"), "123")

    def test_session_round_trip_and_revocation(self):
        payload = build_session_payload(self.user)
        self.assertEqual(payload["roles"], ["studio"])
        self.assertTrue(payload["rights"][MANAGE_RESERVATIONS])

        token = create_session(payload)
        self.assertEqual(get_session(token)["userID"], self.user.UserID)

        tampered = ("A" if token[0] != "A" else "B") + token[1:]
        self.assertIsNone(get_session(tampered))
        self.assertIsNone(get_session("not-a-token"))

        remove_session(token)
        self.assertIsNone(get_session(token))


if __name__ == "__main__":
    unittest.main()
