import unittest
from datetime import datetime

from schemas.contact_schema import validate_contact_payload
from schemas.interaction_schema import validate_bulk_payload, validate_interaction_payload
from schemas.opportunity_schema import validate_opportunity_payload
from schemas.organization_schema import normalize_organization_filters, validate_organization_payload
from schemas.task_schema import normalize_status_filter, validate_task_create, validate_task_update
from schemas.user_schema import validate_registration, validate_user_update


class OrganizationSchemaTests(unittest.TestCase):
    def test_create_applies_defaults_and_maps_columns(self):
        values = validate_organization_payload(
            {"name": " Bistro One ", "segment": "fine dining", "zipCode": "60601", "estimatedRevenue": "125000"}
        )
        self.assertEqual(values["name"], "Bistro One")
        self.assertEqual(values["segment"], "FINE_DINING")
        self.assertEqual(values["priority"], "C")
        self.assertEqual(values["status"], "ACTIVE")
        self.assertEqual(values["zip_code"], "60601")
        self.assertEqual(values["estimated_revenue"], 125000.0)

    def test_create_requires_name_and_segment(self):
        with self.assertRaises(ValueError):
            validate_organization_payload({"segment": "CATERING"})
        with self.assertRaises(ValueError):
            validate_organization_payload({"name": "No Segment"})

    def test_rejects_bad_email_and_priority(self):
        with self.assertRaises(ValueError):
            validate_organization_payload({"name": "X", "segment": "CATERING", "email": "nope"})
        with self.assertRaises(ValueError):
            validate_organization_payload({"name": "X", "segment": "CATERING", "priority": "Z"})

    def test_partial_update_only_touches_given_fields(self):
        self.assertEqual(validate_organization_payload({"priority": "a"}, partial=True), {"priority": "A"})
        with self.assertRaises(ValueError):
            validate_organization_payload({}, partial=True)

    def test_partial_update_ignores_nulls_for_defaulted_fields(self):
        values = validate_organization_payload(
            {"name": "Bistro", "priority": None, "type": None, "status": None}, partial=True
        )
        self.assertEqual(values, {"name": "Bistro"})
        with self.assertRaises(ValueError):
            validate_organization_payload({"priority": None}, partial=True)

    def test_create_applies_defaults_for_null_fields(self):
        values = validate_organization_payload({"name": "Bistro", "segment": "CATERING", "status": None})
        self.assertEqual(values["status"], "ACTIVE")
        self.assertEqual(values["type"], "PROSPECT")

    def test_filters(self):
        self.assertEqual(
            normalize_organization_filters({"priority": "b"}),
            {"priority": "B", "segment": None, "status": "ACTIVE"},
        )
        self.assertIsNone(normalize_organization_filters({"status": "all"})["status"])
        with self.assertRaises(ValueError):
            normalize_organization_filters({"segment": "SPACE"})


class ContactSchemaTests(unittest.TestCase):
    def test_create_requires_organization(self):
        with self.assertRaises(ValueError):
            validate_contact_payload({"firstName": "Ana", "lastName": "Diaz"})
        values = validate_contact_payload(
            {"firstName": "Ana", "lastName": "Diaz", "organizationId": "org-1", "isPrimary": True}
        )
        self.assertEqual(values["organization_id"], "org-1")
        self.assertTrue(values["is_primary"])

    def test_partial_update_keeps_primary_flag_on_null(self):
        values = validate_contact_payload({"phone": "555-0100", "isPrimary": None}, partial=True)
        self.assertEqual(values, {"phone": "555-0100"})
        self.assertIs(validate_contact_payload({"isPrimary": False}, partial=True)["is_primary"], False)


class InteractionSchemaTests(unittest.TestCase):
    def test_single_interaction(self):
        values = validate_interaction_payload(
            {
                "type": "phone call",
                "subject": "Menu review",
                "organizationId": "org-1",
                "date": "2026-03-01T15:30:00Z",
                "outcome": "positive",
            }
        )
        self.assertEqual(values["type"], "PHONE_CALL")
        self.assertEqual(values["outcome"], "POSITIVE")
        self.assertEqual(values["date"], datetime(2026, 3, 1, 15, 30))
        self.assertIsNone(values["contact_id"])

    def test_bulk_limits_and_error_index(self):
        with self.assertRaises(ValueError):
            validate_bulk_payload({"interactions": []})
        item = {"type": "EMAIL", "subject": "Hi", "organizationId": "org-1"}
        with self.assertRaises(ValueError):
            validate_bulk_payload({"interactions": [item] * 51})
        with self.assertRaisesRegex(ValueError, r"interactions\[1\]"):
            validate_bulk_payload({"interactions": [item, {"type": "FAX", "subject": "x", "organizationId": "o"}]})


class OpportunitySchemaTests(unittest.TestCase):
    def test_stage_default_probability(self):
        values = validate_opportunity_payload({"name": "Q3 order", "organizationId": "org-1", "stage": "qualified"})
        self.assertEqual(values["probability"], 25)

    def test_explicit_probability_wins(self):
        values = validate_opportunity_payload({"stage": "PROPOSAL", "probability": 40}, partial=True)
        self.assertEqual(values["probability"], 40)

    def test_partial_update_with_null_stage_keeps_stage_and_probability(self):
        values = validate_opportunity_payload({"name": "Deal", "stage": None}, partial=True)
        self.assertEqual(values, {"name": "Deal"})

    def test_create_without_stage_starts_as_prospect(self):
        values = validate_opportunity_payload({"name": "Deal", "organizationId": "org-1"})
        self.assertEqual(values["stage"], "PROSPECT")
        self.assertEqual(values["probability"], 10)

    def test_probability_bounds(self):
        with self.assertRaises(ValueError):
            validate_opportunity_payload({"probability": 101}, partial=True)


class TaskSchemaTests(unittest.TestCase):
    def test_create_defaults(self):
        payload = validate_task_create({"title": "Call the chef"})
        self.assertEqual(payload["status"], "new")
        self.assertEqual(payload["priority"], "medium")

    def test_update_rejects_unknown_fields(self):
        with self.assertRaises(ValueError):
            validate_task_update({"createdByUserId": "someone"})
        self.assertEqual(validate_task_update({"status": "In Progress"}), {"status": "in_progress"})

    def test_update_ignores_null_status_and_priority(self):
        updates = validate_task_update({"title": "Call back", "status": None, "priority": None})
        self.assertEqual(updates, {"title": "Call back"})
        with self.assertRaises(ValueError):
            validate_task_update({"status": None})

    def test_status_filter(self):
        self.assertIsNone(normalize_status_filter("all"))
        self.assertEqual(normalize_status_filter("completed"), "completed")
        with self.assertRaises(ValueError):
            normalize_status_filter("archived")


class UserSchemaTests(unittest.TestCase):
    def test_registration_normalizes_email(self):
        values = validate_registration({"name": "Ana", "email": " Ana@Pantry.Example ", "password": "long-enough-pw"})
        self.assertEqual(values["email"], "ana@pantry.example")
        with self.assertRaises(ValueError):
            validate_registration({"name": "Ana", "email": "ana@pantry.example"})

    def test_update_accepts_known_roles_only(self):
        self.assertEqual(validate_user_update({"role": " Manager "}), {"role": "manager"})
        self.assertEqual(validate_user_update({"isActive": "false"}), {"is_active": False})
        for payload in ({"role": "owner"}, {"email": "x@y.z"}, {"role": None}):
            with self.assertRaises(ValueError):
                validate_user_update(payload)


if __name__ == "__main__":
    unittest.main()
