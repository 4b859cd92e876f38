# Custom exceptions to be used throughout the project.

class ValidationError(Exception):
    """
    To be raised when user submitted input fails validation. The message is safe to show back to the user via flash().
    """
    # By default Exception class takes a tuple of arguments
    def __init__(self, message, field=None):
        super().__init__(message)
        self.message = message
        self.field = field


class TimeValidationError(ValidationError):
    """
    To be raised when a date or time input cannot be used for a booking.
    May be raised under the following circumstances:
        1. Date input is not a valid YYYY-MM-DD calendar date
        2. Time input is not a valid HH:MM time of day
        3. Time input is not one of the salon's scheduled times for that day
    """


class DuplicateRegistrationError(ValidationError):
    """
    To be raised when a client registers with a phone number that already belongs to another client.
    """


class NotFoundError(Exception):
    def __init__(self, message):
        super().__init__(message)
        self.message = message


class StoreError(Exception):
    """
    To be raised when the record store (Postgres) fails to answer a query or command.
    """
    def __init__(self, message, *args):
        super().__init__(message, *args)
        self.message = message


class AvailabilityLookupError(StoreError):
    """
    Raised when the booked times for a date could not be fetched.
    Callers must show this as an error state, never as a day without slots.
    """


class SlotUnavailableError(Exception):
    """
    To be raised when a booking is submitted for a slot that was taken (or became too soon) after it was displayed.
    """
    def __init__(self, date, time):
        self.date = date
        self.time = time
        self.message = f"The {time} slot on {date} is no longer available. Please pick another time."
        super().__init__(self.message)
