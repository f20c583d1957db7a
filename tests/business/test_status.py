"""Appointment status model tests."""
import pytest

from business.status import AppointmentStatus


class TestAppointmentStatus:

    def test_only_cancelled_frees_the_calendar(self):
        free = [s for s in AppointmentStatus if not s.occupies_calendar]
        assert free == [AppointmentStatus.CANCELLED]

    def test_placeholders(self):
        assert AppointmentStatus.BLOCKED.is_placeholder
        assert AppointmentStatus.EARLY_LEAVE.is_placeholder
        assert not AppointmentStatus.PENDING.is_placeholder

    def test_settleable_statuses(self):
        settleable = {s for s in AppointmentStatus if s.is_settleable}
        assert settleable == {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED}

    @pytest.mark.parametrize("current,target,allowed", [
        ("pending", "confirmed", True),
        ("pending", "completed", True),
        ("confirmed", "cancelled", True),
        ("confirmed", "pending", False),
        ("completed", "cancelled", False),
        ("cancelled", "confirmed", False),
        ("blocked", "cancelled", True),
        ("blocked", "completed", False),
    ])
    def test_transitions(self, current, target, allowed):
        assert AppointmentStatus(current).can_transition_to(
            AppointmentStatus(target)
        ) is allowed

    def test_unknown_status_is_rejected(self):
        with pytest.raises(ValueError):
            AppointmentStatus("no_show")
