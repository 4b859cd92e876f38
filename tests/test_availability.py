import unittest
from datetime import date, datetime, timedelta
from salon_site.booking.availability import (LEAD_TIME, WEEKLY_SCHEDULE, available_times, compute_slots, day_of_week,
                                             is_scheduled)
from salon_site.booking.models import TimeSlot

WEEKDAY_TIMES = ['10:00', '11:00', '12:00', '13:00', '14:00', '15:00', '16:00', '17:00', '18:00', '19:00']
SATURDAY_TIMES = ['10:00', '11:00', '12:00', '13:00', '14:00']

# Well before every date used below
LONG_AGO = datetime(2024, 1, 1, 8, 0)


class AvailabilityTest(unittest.TestCase):

    def test_day_of_week_is_sunday_first(self):
        self.assertEqual(day_of_week(date(2024, 6, 16)), 0)  # Sunday
        self.assertEqual(day_of_week(date(2024, 6, 10)), 1)  # Monday
        self.assertEqual(day_of_week(date(2024, 6, 15)), 6)  # Saturday

    def test_schedule_table(self):
        self.assertEqual(WEEKLY_SCHEDULE[0], ())
        self.assertEqual(list(WEEKLY_SCHEDULE[6]), SATURDAY_TIMES)
        for weekday in range(1, 6):
            self.assertEqual(list(WEEKLY_SCHEDULE[weekday]), WEEKDAY_TIMES)

    def test_sundays_have_no_slots(self):
        for offset in range(0, 52 * 7, 7):
            sunday = date(2024, 6, 16) + timedelta(days=offset)
            self.assertEqual(compute_slots(sunday, [], LONG_AGO), [])
            self.assertEqual(compute_slots(sunday, ['10:00'], LONG_AGO), [])

    def test_sunday_ignores_bookings_and_clock(self):
        self.assertEqual(compute_slots(date(2024, 6, 16), ['11:00', '12:00'], datetime(2024, 6, 16, 23, 0)), [])

    def test_saturday_times(self):
        slots = compute_slots(date(2024, 6, 15), [], LONG_AGO)
        self.assertEqual([slot.time for slot in slots], SATURDAY_TIMES)

    def test_weekday_times(self):
        for day in range(10, 15):
            slots = compute_slots(date(2024, 6, day), [], LONG_AGO)
            self.assertEqual([slot.time for slot in slots], WEEKDAY_TIMES)
            self.assertTrue(all(slot.available for slot in slots))

    def test_booked_times_are_unavailable(self):
        slots = compute_slots(date(2024, 6, 12), ['10:00', '15:00', '19:00'], LONG_AGO)
        unavailable = [slot.time for slot in slots if not slot.available]
        self.assertEqual(unavailable, ['10:00', '15:00', '19:00'])

    def test_booked_time_not_on_schedule_is_ignored(self):
        slots = compute_slots(date(2024, 6, 12), ['09:30'], LONG_AGO)
        self.assertTrue(all(slot.available for slot in slots))

    def test_lead_time_on_the_same_day(self):
        now = datetime(2024, 6, 10, 9, 0)
        slots = compute_slots(date(2024, 6, 10), [], now)
        self.assertEqual(slots[0], TimeSlot('10:00', False))
        self.assertEqual(slots[1], TimeSlot('11:00', True))
        self.assertEqual(available_times(slots), WEEKDAY_TIMES[1:])

    def test_scenario_monday_morning(self):
        # 09:00 Monday: 10:00 and 11:00 are inside the two hour lead (11:00 only when a minute has passed)
        now = datetime(2024, 6, 10, 9, 0, 30)
        slots = compute_slots(date(2024, 6, 10), [], now)
        self.assertEqual([slot.time for slot in slots if not slot.available], ['10:00', '11:00'])
        self.assertEqual(available_times(slots), WEEKDAY_TIMES[2:])

    def test_cutoff_instant_is_available(self):
        now = datetime(2024, 6, 10, 10, 0)
        slots = compute_slots(date(2024, 6, 10), [], now)
        by_time = {slot.time: slot.available for slot in slots}
        self.assertFalse(by_time['11:00'])
        self.assertTrue(by_time['12:00'])

    def test_past_dates_are_fully_unavailable(self):
        now = datetime(2024, 6, 11, 8, 0)
        slots = compute_slots(date(2024, 6, 10), [], now)
        self.assertEqual(len(slots), 10)
        self.assertFalse(any(slot.available for slot in slots))

    def test_lead_time_does_not_affect_next_day(self):
        now = datetime(2024, 6, 10, 23, 0)
        slots = compute_slots(date(2024, 6, 11), [], now)
        self.assertTrue(all(slot.available for slot in slots))
        self.assertEqual(LEAD_TIME, timedelta(hours=2))

    def test_scenario_saturday_with_booking(self):
        slots = compute_slots(date(2024, 6, 15), {'11:00'}, LONG_AGO)
        self.assertEqual(slots, [TimeSlot('10:00', True), TimeSlot('11:00', False), TimeSlot('12:00', True),
                                 TimeSlot('13:00', True), TimeSlot('14:00', True)])

    def test_held_time_is_available_for_its_own_appointment(self):
        # Editing an appointment at 13:00, the only booking that day
        slots = compute_slots(date(2024, 6, 12), ['13:00'], LONG_AGO, held_time='13:00')
        self.assertIn(TimeSlot('13:00', True), slots)
        self.assertTrue(all(slot.available for slot in slots))

    def test_held_time_does_not_free_other_bookings(self):
        slots = compute_slots(date(2024, 6, 12), ['13:00', '14:00'], LONG_AGO, held_time='13:00')
        by_time = {slot.time: slot.available for slot in slots}
        self.assertTrue(by_time['13:00'])
        self.assertFalse(by_time['14:00'])

    def test_same_inputs_same_output(self):
        args = (date(2024, 6, 13), ['12:00'], datetime(2024, 6, 13, 11, 0))
        self.assertEqual(compute_slots(*args), compute_slots(*args))

    def test_input_bookings_are_not_mutated(self):
        booked = ['12:00', '10:00']
        compute_slots(date(2024, 6, 13), booked, LONG_AGO)
        self.assertEqual(booked, ['12:00', '10:00'])

    def test_is_scheduled(self):
        self.assertTrue(is_scheduled(date(2024, 6, 15), '14:00'))
        self.assertFalse(is_scheduled(date(2024, 6, 15), '15:00'))
        self.assertFalse(is_scheduled(date(2024, 6, 16), '10:00'))
        self.assertFalse(is_scheduled(date(2024, 6, 10), '10:30'))

    def test_leap_day(self):
        # 2024-02-29 is a Thursday
        self.assertEqual(day_of_week(date(2024, 2, 29)), 4)
        self.assertEqual(len(compute_slots(date(2024, 2, 29), [], LONG_AGO - timedelta(days=365))), 10)


if __name__ == '__main__':
    unittest.main()
