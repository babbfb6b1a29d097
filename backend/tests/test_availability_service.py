# Overview: Pytest coverage for the availability resolver.

"""
Availability Resolver Tests

Covers:
- Half-open overlap (back-to-back bookings allowed)
- Status filtering (completed / cancelled / no-show never block)
- Cross-location conflicts
- Sub-assigned staff on additional services
- Blocked time
- Excluding the appointment being re-checked
- Batch availability for a location
"""

import pytest

from bookwell.extensions import db
from bookwell.models import BlockedTime
from bookwell.services import availability_service
from bookwell.services.availability_service import (
    ensure_available,
    find_conflicts,
    has_conflict,
    intervals_overlap,
    unavailable_staff,
)
from bookwell.validation import ConflictError, ValidationError


class TestIntervalOverlap:
    def test_touching_intervals_do_not_overlap(self, at):
        assert not intervals_overlap(at(14), at(15), at(15), at(16))
        assert not intervals_overlap(at(15), at(16), at(14), at(15))

    def test_partial_overlap(self, at):
        assert intervals_overlap(at(14), at(15), at(14, 30), at(15, 30))

    def test_containment(self, at):
        assert intervals_overlap(at(14), at(17), at(15), at(16))
        assert intervals_overlap(at(15), at(16), at(14), at(17))

    def test_identical_start(self, at):
        assert intervals_overlap(at(14), at(14, 15), at(14), at(16))


class TestHasConflict:
    def test_booking_scenario(self, db_session, alex, make_appointment, at):
        """14:00-15:00 confirmed blocks 14:30, not 15:00; cancelling frees 14:30."""
        appt = make_appointment(alex, at(14), 60, status="confirmed")

        assert has_conflict(alex.id, at(14, 30), 60)
        assert not has_conflict(alex.id, at(15), 60)

        appt.status = "cancelled"
        db_session.commit()

        assert not has_conflict(alex.id, at(14, 30), 60)

    @pytest.mark.parametrize("status", ["completed", "cancelled", "no-show"])
    def test_terminal_statuses_never_block(self, db_session, alex, make_appointment, at, status):
        make_appointment(alex, at(14), 60, status=status)
        assert not has_conflict(alex.id, at(14), 60)

    @pytest.mark.parametrize("status", ["pending", "confirmed", "checked-in"])
    def test_open_statuses_block(self, db_session, alex, make_appointment, at, status):
        make_appointment(alex, at(14), 60, status=status)
        assert has_conflict(alex.id, at(14), 60)

    def test_conflict_at_other_location(self, db_session, alex, uptown, make_appointment, at):
        """A staff member's calendar spans every location."""
        make_appointment(alex, at(14), 60, location=uptown)
        assert has_conflict(alex.id, at(14, 30), 30)

    def test_other_staff_not_affected(self, db_session, alex, sam, make_appointment, at):
        make_appointment(alex, at(14), 60)
        assert not has_conflict(sam.id, at(14), 60)

    def test_sub_assigned_staff_is_busy(self, db_session, alex, sam, color, make_appointment, at):
        """Sam works the color service on Alex's appointment."""
        make_appointment(alex, at(14), 90, extra=[(color, sam)])
        assert has_conflict(sam.id, at(15), 30)

    def test_primary_and_sub_assigned_counted_once(self, db_session, alex, color, make_appointment, at):
        appt = make_appointment(alex, at(14), 60, extra=[(color, alex)])
        conflicts = find_conflicts(alex.id, at(14), 60)
        assert [c.source_id for c in conflicts] == [appt.id]

    def test_long_appointment_found_by_bounded_lookback(self, db_session, alex, make_appointment, at):
        make_appointment(alex, at(3), 720)
        assert has_conflict(alex.id, at(14, 30), 15)
        assert not has_conflict(alex.id, at(15), 15)

    def test_exclude_appointment(self, db_session, alex, make_appointment, at):
        appt = make_appointment(alex, at(14), 60)
        assert not has_conflict(alex.id, at(14), 60, exclude_appointment_id=appt.id)

    def test_blocked_time_always_blocks(self, db_session, alex, downtown, at):
        db_session.add(BlockedTime(
            staff_id=alex.id,
            location_id=downtown.id,
            start_at=at(12),
            duration_minutes=60,
            reason="Lunch",
        ))
        db_session.commit()

        assert has_conflict(alex.id, at(12, 30), 60)
        assert not has_conflict(alex.id, at(13), 60)

    @pytest.mark.parametrize("duration", [0, -15])
    def test_non_positive_duration_rejected(self, db_session, alex, at, duration):
        with pytest.raises(ValidationError):
            has_conflict(alex.id, at(14), duration)

    def test_duration_over_maximum_rejected(self, app, db_session, alex, at):
        with pytest.raises(ValidationError):
            has_conflict(alex.id, at(14), app.config["MAX_APPOINTMENT_MINUTES"] + 1)


class TestAppointmentBuffers:
    def test_default_buffers_keep_back_to_back(self, app, db_session, alex, make_appointment, at):
        assert availability_service.appointment_buffers() == (0, 0)
        make_appointment(alex, at(14), 60)

        assert not has_conflict(alex.id, at(13), 60)
        assert not has_conflict(alex.id, at(15), 60)

    def test_after_buffer_pushes_next_slot(self, app, db_session, alex, make_appointment, at, monkeypatch):
        monkeypatch.setitem(app.config, "APPOINTMENT_BUFFER_AFTER_MINUTES", 15)
        make_appointment(alex, at(14), 60)

        assert has_conflict(alex.id, at(15), 30)
        assert not has_conflict(alex.id, at(15, 15), 30)
        assert not has_conflict(alex.id, at(13), 60)

    def test_before_buffer_guards_preceding_slot(self, app, db_session, alex, make_appointment, at, monkeypatch):
        monkeypatch.setitem(app.config, "APPOINTMENT_BUFFER_BEFORE_MINUTES", 10)
        make_appointment(alex, at(14), 60)

        assert has_conflict(alex.id, at(13), 60)
        assert not has_conflict(alex.id, at(12, 50), 60)

    def test_blocked_time_is_not_buffered(self, app, db_session, alex, downtown, at, monkeypatch):
        monkeypatch.setitem(app.config, "APPOINTMENT_BUFFER_AFTER_MINUTES", 30)
        db_session.add(BlockedTime(staff_id=alex.id, location_id=downtown.id, start_at=at(14), duration_minutes=60))
        db_session.commit()

        assert not has_conflict(alex.id, at(15), 30)

    def test_negative_buffer_rejected(self, app, db_session, alex, at, monkeypatch):
        monkeypatch.setitem(app.config, "APPOINTMENT_BUFFER_BEFORE_MINUTES", -5)
        with pytest.raises(ValidationError):
            has_conflict(alex.id, at(14), 30)


class TestEnsureAvailable:
    def test_raises_conflict_with_reason(self, db_session, alex, downtown, make_appointment, at):
        make_appointment(alex, at(14), 60)
        db_session.add(BlockedTime(staff_id=alex.id, location_id=downtown.id, start_at=at(14, 30), duration_minutes=30))
        db_session.commit()

        with pytest.raises(ConflictError) as exc:
            ensure_available(alex.id, at(14), 60)

        message = str(exc.value)
        assert "has an appointment at Downtown" in message
        assert "has blocked time" in message

    def test_passes_when_free(self, db_session, alex, at):
        ensure_available(alex.id, at(9), 60)


class TestBatchAvailability:
    def test_unavailable_staff_matches_single_checks(self, db_session, alex, sam, jordan, make_appointment, at):
        make_appointment(alex, at(14), 60)
        make_appointment(jordan, at(13), 90)

        ids = [alex.id, sam.id, jordan.id]
        busy = unavailable_staff(ids, at(14), 60)

        assert busy == {sid for sid in ids if has_conflict(sid, at(14), 60)}
        assert busy == {alex.id, jordan.id}

    def test_location_split(self, db_session, downtown, alex, sam, jordan, make_appointment, at):
        make_appointment(alex, at(14), 60)

        result = availability_service.available_staff_at_location(downtown.id, at(14), 60)

        # Jordan only works uptown
        assert result == {"available": [sam.id], "unavailable": [alex.id]}

    def test_inactive_link_excluded(self, db_session, downtown, sam):
        for link in sam.locations:
            link.is_active = False
        db.session.commit()

        staff = availability_service.active_staff_for_location(downtown.id)
        assert sam.id not in [s.id for s in staff]
