"""Tests for relationship-field normalization."""

from salesqueue.pipedrive.models import Activity, Deal
from salesqueue.pipedrive.refs import EntityRef, normalize_ref


class TestNormalizeRef:
    """Both upstream shapes reduce to EntityRef."""

    def test_bare_integer(self):
        """A bare id has no display name."""
        assert normalize_ref(10) == EntityRef(id=10, name=None)

    def test_structured_value(self):
        """`{value, name}` yields both parts."""
        assert normalize_ref({"value": 10, "name": "Maria"}) == EntityRef(id=10, name="Maria")

    def test_structured_with_id_key(self):
        assert normalize_ref({"id": 21, "name": "Acme"}) == EntityRef(id=21, name="Acme")

    def test_numeric_string(self):
        assert normalize_ref("42") == EntityRef(id=42)

    def test_absent_values(self):
        """None, zero, booleans and junk are no reference at all."""
        for raw in (None, 0, False, True, "", "abc", {"name": "orphan"}, [1]):
            assert normalize_ref(raw) is None

    def test_entity_ref_passes_through(self):
        ref = EntityRef(id=3, name="x")
        assert normalize_ref(ref) is ref


class TestModelReferences:
    """Entity models normalize their relationship fields on validation."""

    def test_deal_with_bare_person_id(self):
        deal = Deal.model_validate({"id": 1, "person_id": 10})
        assert deal.person_id.id == 10
        assert deal.person_display_name is None

    def test_deal_with_structured_person_id(self):
        deal = Deal.model_validate({"id": 1, "person_id": {"value": 10, "name": "Maria"}})
        assert deal.person_id.id == 10
        assert deal.person_display_name == "Maria"

    def test_activity_prefers_own_name_field(self):
        activity = Activity.model_validate(
            {"id": 5, "person_id": {"value": 10, "name": "From ref"}, "person_name": "Denormalized"}
        )
        assert activity.person_display_name == "Denormalized"

    def test_activity_null_subject(self):
        activity = Activity.model_validate({"id": 5, "subject": None, "type": None})
        assert activity.subject == ""
        assert activity.type == ""
