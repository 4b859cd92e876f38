"""
Who is signed in, and what they were about to book, for the length of one request.

The context is read from the signed Flask session cookie at the start of a request and written back explicitly when it changes.
"""
from dataclasses import dataclass
from typing import Optional
from .models import BookingSelection, Principal

PRINCIPAL_KEY = 'principal'
PENDING_KEY = 'pending_booking'


@dataclass
class SessionContext:
    principal: Optional[Principal] = None
    pending: Optional[BookingSelection] = None

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

    @property
    def is_admin(self) -> bool:
        return self.principal is not None and self.principal.is_admin

    @classmethod
    def load(cls, session) -> "SessionContext":
        principal = session.get(PRINCIPAL_KEY)
        pending = session.get(PENDING_KEY)
        # A malformed cookie payload is treated as signed out
        try:
            principal = Principal.from_dict(principal) if principal else None
        except (KeyError, ValueError, TypeError):
            principal = None
        try:
            pending = BookingSelection.from_dict(pending) if pending else None
        except (KeyError, TypeError):
            pending = None
        return cls(principal=principal, pending=pending)

    def save(self, session):
        if self.principal is not None:
            session[PRINCIPAL_KEY] = self.principal.to_dict()
        else:
            session.pop(PRINCIPAL_KEY, None)
        if self.pending is not None:
            session[PENDING_KEY] = self.pending.to_dict()
        else:
            session.pop(PENDING_KEY, None)

    def sign_in(self, principal: Principal):
        self.principal = principal

    def clear(self):
        self.principal = None
        self.pending = None
