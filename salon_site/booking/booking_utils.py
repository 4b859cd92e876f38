# Utility functions for booking functionality
# Every parse_* function takes the raw request.form MultiDict and returns a typed record from models, or raises ValidationError with a message that can be flashed back to the user.
from werkzeug.datastructures import MultiDict
import math
import re
from datetime import date
from typing import Optional
import phonenumbers
from email_validator import validate_email, EmailNotValidError
from .error_utils import ValidationError, TimeValidationError
from .models import (AppointmentStatus, AppointmentUpdate, BookingSelection, RegistrationForm, ServiceForm,
                     ServiceUpdate)

DEFAULT_IMAGE_URL = 'https://picsum.photos/400/300'

MAX_NAME_LENGTH = 100
MAX_TEXT_LENGTH = 1000
MIN_PASSWORD_LENGTH = 4


def parse_date(raw: Optional[str]) -> date:
    """
    Parse a YYYY-MM-DD string into a date. The date is a naive salon-local calendar day.
    """
    if not raw:
        raise TimeValidationError("A date is required.", 'date')
    raw = raw.strip()
    if not re.fullmatch(r'\d{4}-\d{2}-\d{2}', raw):
        raise TimeValidationError(f"{raw} is not a date in YYYY-MM-DD format.", 'date')
    try:
        return date.fromisoformat(raw)
    except ValueError:
        # Matches the format but not a real day, ex: 2024-02-30
        raise TimeValidationError(f"{raw} is not a valid calendar date.", 'date')


def parse_time(raw: Optional[str]) -> str:
    """
    Validate a zero-padded 24 hour HH:MM string. Returns it stripped.
    """
    if not raw:
        raise TimeValidationError("A time is required.", 'time')
    raw = raw.strip()
    if not re.fullmatch(r'([01]\d|2[0-3]):[0-5]\d', raw):
        raise TimeValidationError(f"{raw} is not a time in HH:MM format.", 'time')
    return raw


def sanitize_phone(phone: Optional[str], region: str = 'BR') -> str:
    # Maximum allowed input length to avoid oversized input injections.
    MAX_PHONE_LENGTH = 50

    # Step 1: Remove any leading or trailing whitespace.
    phone = (phone or '').strip()
    if not phone:
        raise ValidationError('Phone number is required', 'phone')

    # Step 2: Ensure the input does not exceed the allowed length.
    if len(phone) > MAX_PHONE_LENGTH:
        raise ValidationError('Phone number input is too long', 'phone')

    # Step 3: Use a regex to ensure only allowed characters are present.
    # Allowed characters: an optional leading '+', digits, spaces, hyphens, and parentheses.
    allowed_pattern = re.compile(r'^\+?[0-9\-\(\)\s]+$')
    if not allowed_pattern.fullmatch(phone):
        raise ValidationError('Phone contains disallowed characters', 'phone')

    # Step 4: Use the phonenumbers library to parse and validate the phone number.
    try:
        # If the number starts with '+', it's likely an international format.
        if phone.startswith('+'):
            parsed_phone = phonenumbers.parse(phone, None)
        else:
            parsed_phone = phonenumbers.parse(phone, region)
    except phonenumbers.NumberParseException:
        raise ValidationError('Invalid phone number format', 'phone')

    # Step 5: Validate that the parsed phone is both "possible" and "valid."
    if not phonenumbers.is_possible_number(parsed_phone) or not phonenumbers.is_valid_number(parsed_phone):
        raise ValidationError('Phone number is not valid', 'phone')

    # Step 6: Format the phone number in a canonical, international E.164 format.
    # This is the unique identifier clients sign in with.
    return phonenumbers.format_number(parsed_phone, phonenumbers.PhoneNumberFormat.E164)


def sanitize_email(email: Optional[str]) -> str:
    # Step 1: Remove leading and trailing whitespace.
    email = (email or '').strip()

    # Step 2: Enforce a maximum allowed length to prevent oversized input.
    MAX_EMAIL_LENGTH = 254  # 254 characters is a common maximum for email addresses by RFC 5321 / 5322 standards
    if len(email) > MAX_EMAIL_LENGTH:
        raise ValidationError('Email input is too long', 'email')

    # Step 3: Use the email_validator library to parse, validate, and normalize the email address.
    # Deliverability is not checked, admin sign in must work without DNS.
    try:
        valid = validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f'Invalid email format: {str(e)}', 'email')

    # Step 4: Return the normalized email address.
    return valid.normalized.lower()


def sanitize_text(value: Optional[str], field: str, *, required=True, max_length=MAX_TEXT_LENGTH) -> str:
    value = (value or '').strip()
    if required and not value:
        raise ValidationError(f'{field.capitalize()} is required', field)
    if len(value) > max_length:
        raise ValidationError(f'{field.capitalize()} is too long. Max {max_length} characters.', field)
    # Reject control characters other than tab, LF and CR
    for ch in value:
        if ord(ch) < 32 and ord(ch) not in {9, 10, 13}:
            raise ValidationError(f'{field.capitalize()} contains disallowed characters', field)
    return value


def _parse_price(raw) -> float:
    try:
        price = float((raw or '').replace(',', '.'))
    except ValueError:
        raise ValidationError('Price must be a number', 'price')
    if not math.isfinite(price):
        raise ValidationError('Price must be a number', 'price')
    if price <= 0:
        raise ValidationError('Price must be greater than zero', 'price')
    return round(price, 2)


def _parse_duration(raw) -> int:
    try:
        duration = int(raw or '')
    except ValueError:
        raise ValidationError('Duration must be a whole number of minutes', 'duration_minutes')
    if duration <= 0:
        raise ValidationError('Duration must be greater than zero', 'duration_minutes')
    return duration


def parse_booking_selection(form: MultiDict) -> BookingSelection:
    service_id = sanitize_text(form.get('service_id'), 'service', max_length=64)
    day = parse_date(form.get('date'))
    time_of_day = parse_time(form.get('time'))
    return BookingSelection(service_id=service_id, date=day.isoformat(), time=time_of_day)


def parse_registration(form: MultiDict, region: str = 'BR') -> RegistrationForm:
    name = sanitize_text(form.get('name'), 'name', max_length=MAX_NAME_LENGTH)
    phone = sanitize_phone(form.get('phone'), region)
    password = form.get('password', '')
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f'Password must have at least {MIN_PASSWORD_LENGTH} characters', 'password')
    return RegistrationForm(name=name, phone=phone, password=password)


def parse_service_form(form: MultiDict) -> ServiceForm:
    return ServiceForm(title=sanitize_text(form.get('title'), 'title', max_length=MAX_NAME_LENGTH),
                       description=sanitize_text(form.get('description'), 'description', required=False),
                       price=_parse_price(form.get('price')),
                       duration_minutes=_parse_duration(form.get('duration_minutes')),
                       image_url=sanitize_text(form.get('image_url'), 'image_url', required=False) or DEFAULT_IMAGE_URL)


def parse_service_update(form: MultiDict) -> ServiceUpdate:
    """
    Only fields that were submitted non-empty end up in the update.
    """
    changes = {}
    if form.get('title', '').strip():
        changes['title'] = sanitize_text(form.get('title'), 'title', max_length=MAX_NAME_LENGTH)
    if form.get('description', '').strip():
        changes['description'] = sanitize_text(form.get('description'), 'description')
    if form.get('price', '').strip():
        changes['price'] = _parse_price(form.get('price'))
    if form.get('duration_minutes', '').strip():
        changes['duration_minutes'] = _parse_duration(form.get('duration_minutes'))
    if form.get('image_url', '').strip():
        changes['image_url'] = sanitize_text(form.get('image_url'), 'image_url')
    return ServiceUpdate(**changes)


def parse_appointment_update(form: MultiDict) -> AppointmentUpdate:
    changes = {}
    if form.get('service_id', '').strip():
        changes['service_id'] = sanitize_text(form.get('service_id'), 'service', max_length=64)
    if form.get('date', '').strip():
        changes['date'] = parse_date(form.get('date')).isoformat()
    if form.get('time', '').strip():
        changes['time'] = parse_time(form.get('time'))
    if form.get('status', '').strip():
        try:
            changes['status'] = AppointmentStatus(form.get('status').strip())
        except ValueError:
            raise ValidationError(f"{form.get('status')} is not a valid status", 'status')
    return AppointmentUpdate(**changes)
