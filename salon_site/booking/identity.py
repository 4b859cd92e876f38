import logging
from typing import Dict, Optional
from werkzeug.security import generate_password_hash, check_password_hash
from .booking_utils import sanitize_email, sanitize_phone
from .error_utils import DuplicateRegistrationError, ValidationError
from .models import Principal, RegistrationForm, Role

logger = logging.getLogger(__name__)

ADMIN_DISPLAY_NAME = 'Administrator'


class IdentityProvider:
    """
    Verifies credentials for the two kinds of principal.

    Identifiers containing '@' are admin emails checked against the configured admin hashes. Anything else is a client phone number looked up in the users table.
    """

    def __init__(self, store, admins: Dict[str, str], phone_region: str = 'BR'):
        # admins maps normalized email -> werkzeug password hash
        self.store = store
        self.admins = admins
        self.phone_region = phone_region

    def authenticate(self, identifier: str, secret: str) -> Optional[Principal]:
        identifier = (identifier or '').strip()
        if not identifier or not secret:
            return None
        if '@' in identifier:
            return self._authenticate_admin(identifier, secret)
        return self._authenticate_client(identifier, secret)

    def _authenticate_admin(self, email, secret):
        try:
            email = sanitize_email(email)
        except ValidationError:
            logger.info("Admin sign in rejected, malformed email")
            return None
        password_hash = self.admins.get(email)
        if password_hash is None or not check_password_hash(password_hash, secret):
            logger.error("Failed admin sign in for %s", email)
            return None
        return Principal(id=email, name=ADMIN_DISPLAY_NAME, phone='', role=Role.ADMIN)

    def _authenticate_client(self, phone, secret):
        try:
            phone = sanitize_phone(phone, self.phone_region)
        except ValidationError:
            return None
        user = self.store.find_user_by_phone(phone)
        if user is None or not check_password_hash(user['password'], secret):
            logger.info("Failed client sign in for %s", phone)
            return None
        return Principal(id=user['id'], name=user['name'], phone=user['phone'], role=Role.CLIENT)

    def register(self, form: RegistrationForm) -> Principal:
        """
        Creates a client account. The phone in *form* is already normalized to E.164 by parse_registration.
        Raises DuplicateRegistrationError when the phone is taken.
        """
        if self.store.find_user_by_phone(form.phone) is not None:
            raise DuplicateRegistrationError("This phone number is already registered.", 'phone')
        # The unique constraint on users.phone still catches a concurrent registration
        user = self.store.create_user(form.name, form.phone, generate_password_hash(form.password))
        logger.info("Registered client %s", user['id'])
        return Principal(id=user['id'], name=user['name'], phone=user['phone'], role=Role.CLIENT)
