from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, List, Optional
import logging
from .availability import available_times, compute_slots, is_scheduled
from .booking_utils import parse_date
from .error_utils import NotFoundError, SlotUnavailableError, TimeValidationError, ValidationError
from .models import Appointment, AppointmentStatus, AppointmentUpdate, BookingSelection, TimeSlot
from .session_context import SessionContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingOutcome:
    """
    Result of a booking submission. Either the appointment was created, or the visitor must sign in first and the selection was parked in the session.
    """
    appointment: Optional[Appointment] = None
    needs_authentication: bool = False


class BookingSequencer:
    """
    Sequences a client booking: sign in first if needed, then re-check the slot against fresh data and save it.
    Also used by the admin panel to move appointments, with the same slot checks.
    """

    def __init__(self, store, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    def available_slots(self, day: date, held_time: Optional[str] = None) -> List[TimeSlot]:
        """
        Slots for *day* from a fresh snapshot of its bookings.
        AvailabilityLookupError from the store propagates so the caller can show an error instead of an empty day.
        """
        booked_times = self.store.list_booked_times(day.isoformat())
        return compute_slots(day, booked_times, self.clock(), held_time=held_time)

    def submit(self, context: SessionContext, selection: BookingSelection) -> BookingOutcome:
        if not context.is_authenticated:
            # Park the selection, it is replayed by resume() after sign in
            context.pending = selection
            return BookingOutcome(needs_authentication=True)
        if context.is_admin:
            raise ValidationError("Administrators cannot book appointments for themselves. Sign in as a client.")

        appointment = self._book(selection, context.principal.id)
        context.pending = None
        return BookingOutcome(appointment=appointment)

    def resume(self, context: SessionContext) -> Optional[BookingOutcome]:
        """
        Submits the parked selection for the principal who just signed in.
        The selection is cleared whether or not the booking succeeds. Returns None if nothing was parked.
        """
        selection = context.pending
        if selection is None or not context.is_authenticated:
            return None
        context.pending = None
        if context.is_admin:
            logger.info("Dropping parked booking, an administrator signed in")
            return None
        return self.submit(context, selection)

    def reschedule(self, appointment: Appointment, changes: AppointmentUpdate) -> None:
        """
        Applies an admin edit to *appointment*.
        When the date or time moves the target slot is checked like a new booking, except that the appointment's own current time stays open to it.
        Re-opening a cancelled appointment in place relies on the store's unique slot index.
        """
        if changes.service_id is not None and self.store.get_service(changes.service_id) is None:
            raise NotFoundError("The selected service no longer exists.")

        target_date = changes.date or appointment.date
        target_time = changes.time or appointment.time
        target_status = changes.status or appointment.status
        moved = target_date != appointment.date or target_time != appointment.time

        if target_status is not AppointmentStatus.CANCELLED and moved:
            held_time = None
            if target_date == appointment.date and appointment.status is not AppointmentStatus.CANCELLED:
                held_time = appointment.time
            self._check_slot(target_date, target_time, held_time)

        try:
            updated = self.store.update_appointment(appointment.id, changes)
        except SlotUnavailableError:
            raise SlotUnavailableError(target_date, target_time)
        if not updated:
            raise NotFoundError("Appointment not found.")
        logger.info("Appointment %s updated: %s", appointment.id, changes.changed_fields())

    def cancel(self, appointment: Appointment) -> None:
        # Cancelling is a status change, rows are never deleted
        if not self.store.update_appointment(appointment.id, AppointmentUpdate(status=AppointmentStatus.CANCELLED)):
            raise NotFoundError("Appointment not found.")
        logger.info("Appointment %s cancelled", appointment.id)

    def _book(self, selection: BookingSelection, user_id) -> Appointment:
        if self.store.get_service(selection.service_id) is None:
            raise NotFoundError("The selected service no longer exists.")
        self._check_slot(selection.date, selection.time)
        # The store's unique index closes the gap between this check and the insert
        appointment = self.store.create_appointment(selection.service_id, user_id, selection.date, selection.time)
        logger.info("Booking submitted. Appointment %s on %s at %s", appointment.id, appointment.date, appointment.time)
        return appointment

    def _check_slot(self, raw_date: str, time_of_day: str, held_time: Optional[str] = None) -> None:
        day = parse_date(raw_date)
        if not is_scheduled(day, time_of_day):
            raise TimeValidationError(f"The salon does not take bookings at {time_of_day} on {raw_date}.", 'time')
        if time_of_day not in available_times(self.available_slots(day, held_time=held_time)):
            raise SlotUnavailableError(raw_date, time_of_day)
