import psycopg2
from psycopg2 import errors
from psycopg2.extras import DictCursor
from contextlib import contextmanager
import logging
import os
from typing import List, Optional
from .error_utils import AvailabilityLookupError, DuplicateRegistrationError, SlotUnavailableError, StoreError
from .models import Appointment, AppointmentStatus, AppointmentUpdate, Service, ServiceForm, ServiceUpdate

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger(__name__)

# Columns the admin update forms are allowed to touch
SERVICE_COLUMNS = ('title', 'description', 'price', 'duration_minutes', 'image_url')
APPOINTMENT_COLUMNS = ('service_id', 'date', 'time', 'status')


class DatabasePersistence:
    def __init__(self):
        self._setup_schema()

    @contextmanager
    def _database_connect(self):
        """
        Internal function to manage the Postgres database connections.
        Must include environment variable for database url path when deploying to production.
        """
        if os.environ.get('FLASK_ENV') == 'production':
            connection = psycopg2.connect(os.environ['DATABASE_URL'])
        else:
            connection = psycopg2.connect(os.environ.get('DATABASE_URL') or 'dbname=salon_booking')
        try:
            with connection:
                yield connection
        finally:
            connection.close()

    # --- Services ---

    def list_services(self) -> List[Service]:
        query = "SELECT * FROM services ORDER BY price ASC"
        logger.info("Executing query: %s", query)
        try:
            with self._database_connect() as conn:
                with conn.cursor(cursor_factory=DictCursor) as cursor:
                    cursor.execute(query)
                    rows = cursor.fetchall()
        except psycopg2.DatabaseError as e:
            logger.error("Fetching services failed: %s", e.args)
            raise StoreError("Could not load services.") from e
        return [Service.from_row(row) for row in rows]

    def get_service(self, service_id) -> Optional[Service]:
        query = "SELECT * FROM services WHERE id = %s"
        logger.info("Executing query: %s", query)
        try:
            with self._database_connect() as conn:
                with conn.cursor(cursor_factory=DictCursor) as cursor:
                    cursor.execute(query, (service_id,))
                    row = cursor.fetchone()
        except psycopg2.DataError:
            # Malformed uuid from the url
            return None
        except psycopg2.DatabaseError as e:
            logger.error("Fetching service failed: %s", e.args)
            raise StoreError("Could not load the service.") from e
        return Service.from_row(row) if row else None

    def add_service(self, service: ServiceForm) -> Service:
        query = """INSERT INTO services (title, description, price, duration_minutes, image_url)
                   VALUES (%s, %s, %s, %s, %s) RETURNING *"""
        logger.info("Executing query: %s", query)
        try:
            with self._database_connect() as conn:
                with conn.cursor(cursor_factory=DictCursor) as cursor:
                    cursor.execute(query, (service.title, service.description, service.price,
                                           service.duration_minutes, service.image_url))
                    row = cursor.fetchone()
        except psycopg2.DatabaseError as e:
            logger.error("Service insertion failed: %s", e.args)
            raise StoreError("Could not save the service.") from e
        return Service.from_row(row)

    def update_service(self, service_id, changes: ServiceUpdate) -> bool:
        """
        Updates only the fields present in *changes*. Returns False if the service doesn't exist.
        """
        fields = changes.changed_fields()
        if not fields:
            return True
        return self._update_row('services', SERVICE_COLUMNS, service_id, fields)

    def delete_service(self, service_id) -> bool:
        # Appointments keep their row, the foreign key is set to NULL by the schema
        query = "DELETE FROM services WHERE id = %s"
        logger.info("Executing query: %s", query)
        try:
            with self._database_connect() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, (service_id,))
                    deleted = cursor.rowcount
        except psycopg2.DatabaseError as e:
            logger.error("Service deletion failed: %s", e.args)
            raise StoreError("Could not delete the service.") from e
        return deleted > 0

    # --- Appointments ---

    def list_appointments(self) -> List[Appointment]:
        """
        All appointments joined with the service title and client name/phone for the admin panel, newest date first.
        """
        query = """SELECT appointments.*,
                          COALESCE(services.title, 'Service removed') AS service_title,
                          COALESCE(users.name, 'Unknown client') AS user_name,
                          COALESCE(users.phone, '') AS user_phone
                   FROM appointments
                   LEFT JOIN services ON appointments.service_id = services.id
                   LEFT JOIN users ON appointments.user_id = users.id
                   ORDER BY appointments.date DESC, appointments.time ASC"""
        logger.info("Executing query: %s", query)
        try:
            with self._database_connect() as conn:
                with conn.cursor(cursor_factory=DictCursor) as cursor:
                    cursor.execute(query)
                    rows = cursor.fetchall()
        except psycopg2.DatabaseError as e:
            logger.error("Fetching appointments failed: %s", e.args)
            raise StoreError("Could not load appointments.") from e
        return [Appointment.from_row(row) for row in rows]

    def get_appointment(self, appointment_id) -> Optional[Appointment]:
        query = """SELECT appointments.*,
                          COALESCE(services.title, 'Service removed') AS service_title,
                          COALESCE(users.name, 'Unknown client') AS user_name,
                          COALESCE(users.phone, '') AS user_phone
                   FROM appointments
                   LEFT JOIN services ON appointments.service_id = services.id
                   LEFT JOIN users ON appointments.user_id = users.id
                   WHERE appointments.id = %s"""
        logger.info("Executing query: %s", query)
        try:
            with self._database_connect() as conn:
                with conn.cursor(cursor_factory=DictCursor) as cursor:
                    cursor.execute(query, (appointment_id,))
                    row = cursor.fetchone()
        except psycopg2.DataError:
            return None
        except psycopg2.DatabaseError as e:
            logger.error("Fetching appointment failed: %s", e.args)
            raise StoreError("Could not load the appointment.") from e
        return Appointment.from_row(row) if row else None

    def list_booked_times(self, date: str) -> List[str]:
        """
        Times already taken on *date* by appointments that are not cancelled.

        Raises AvailabilityLookupError instead of returning an empty list so callers never show a failed lookup as a free day.
        """
        query = "SELECT time FROM appointments WHERE date = %s AND status <> %s"
        params = (date, AppointmentStatus.CANCELLED.value)
        logger.info("Executing query: %s", query)
        try:
            with self._database_connect() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, params)
                    rows = cursor.fetchall()
        except psycopg2.DatabaseError as e:
            logger.error("Availability lookup failed for %s: %s", date, e.args)
            raise AvailabilityLookupError(f"Could not check availability for {date}.") from e
        return [row[0] for row in rows]

    def create_appointment(self, service_id, user_id, date: str, time: str) -> Appointment:
        """
        Inserts a pending appointment.
        The partial unique index on (date, time) rejects a second live booking for the same slot, which is reported as SlotUnavailableError.
        """
        query = """INSERT INTO appointments (service_id, user_id, date, time, status)
                   VALUES (%s, %s, %s, %s, %s) RETURNING *"""
        logger.info("Executing query: %s", query)
        try:
            with self._database_connect() as conn:
                with conn.cursor(cursor_factory=DictCursor) as cursor:
                    cursor.execute(query, (service_id, user_id, date, time, AppointmentStatus.PENDING.value))
                    row = cursor.fetchone()
        except errors.UniqueViolation:
            logger.info("Slot %s %s was taken before the booking was saved", date, time)
            raise SlotUnavailableError(date, time)
        except psycopg2.DatabaseError as e:
            logger.error("Booking insertion failed: %s", e.args)
            raise StoreError("Could not save the booking.") from e
        return Appointment.from_row(row)

    def update_appointment(self, appointment_id, changes: AppointmentUpdate) -> bool:
        fields = changes.changed_fields()
        if not fields:
            return True
        return self._update_row('appointments', APPOINTMENT_COLUMNS, appointment_id, fields)

    # --- Users ---

    def find_user_by_phone(self, phone: str) -> Optional[dict]:
        """
        Returns the raw user row as a dict (id, name, phone, password, role) or None.
        The password column holds a werkzeug hash.
        """
        query = "SELECT id, name, phone, password, role FROM users WHERE phone = %s"
        logger.info("Executing query: %s", query)
        try:
            with self._database_connect() as conn:
                with conn.cursor(cursor_factory=DictCursor) as cursor:
                    cursor.execute(query, (phone,))
                    row = cursor.fetchone()
        except psycopg2.DatabaseError as e:
            logger.error("User lookup failed: %s", e.args)
            raise StoreError("Could not look up the client.") from e
        if row is None:
            return None
        user = dict(row)
        user['id'] = str(user['id'])
        return user

    def create_user(self, name: str, phone: str, password_hash: str) -> dict:
        query = """INSERT INTO users (name, phone, password, role) VALUES (%s, %s, %s, 'client')
                   RETURNING id, name, phone, role"""
        logger.info("Executing query: %s", query)
        try:
            with self._database_connect() as conn:
                with conn.cursor(cursor_factory=DictCursor) as cursor:
                    cursor.execute(query, (name, phone, password_hash))
                    row = cursor.fetchone()
        except errors.UniqueViolation:
            raise DuplicateRegistrationError("This phone number is already registered.", 'phone')
        except psycopg2.DatabaseError as e:
            logger.error("User insertion failed: %s", e.args)
            raise StoreError("Could not register the client.") from e
        user = dict(row)
        user['id'] = str(user['id'])
        return user

    def _update_row(self, table, allowed_columns, row_id, fields) -> bool:
        # Column names come from the allow-list, never from the request
        columns = [column for column in allowed_columns if column in fields]
        assignments = ", ".join(f"{column} = %s" for column in columns)
        query = f"UPDATE {table} SET {assignments} WHERE id = %s"
        logger.info("Executing query: %s", query)
        try:
            with self._database_connect() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, [fields[column] for column in columns] + [row_id])
                    updated = cursor.rowcount
        except errors.UniqueViolation:
            raise SlotUnavailableError(fields.get('date', ''), fields.get('time', ''))
        except psycopg2.DatabaseError as e:
            logger.error("Update on %s failed: %s", table, e.args)
            raise StoreError(f"Could not update {table}.") from e
        return updated > 0

    # Need to run testing to ensure database created from this matches hosted environment
    def _setup_schema(self):
        """
        Internal function to set-up the database schema if the tables do not exist. Primarily used when being deployed in production.
        """
        try:
            self._create_tables()
        except psycopg2.DatabaseError as e:
            logger.error("Schema setup failed: %s", e.args)
            raise StoreError("Could not reach the database.") from e

    def _create_tables(self):
        with self._database_connect() as conn:
            with conn.cursor() as cursor:
                cursor.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto";')
                cursor.execute("""
                    SELECT COUNT(*)
                    FROM information_schema.tables
                    WHERE table_schema = 'public' AND table_name = 'services';
                """)
                if cursor.fetchone()[0] == 0:
                    logger.info("Setting up the schema.")
                    cursor.execute("""
                        CREATE TABLE services (
                        id uuid DEFAULT gen_random_uuid() PRIMARY KEY,
                        title text NOT NULL,
                        description text,
                        price numeric NOT NULL,
                        duration_minutes integer NOT NULL,
                        image_url text);
                    """)
                cursor.execute("""
                    SELECT COUNT(*)
                    FROM information_schema.tables
                    WHERE table_schema = 'public' AND table_name = 'users';
                """)
                if cursor.fetchone()[0] == 0:
                    cursor.execute("""CREATE TABLE users (
                                id uuid DEFAULT gen_random_uuid() PRIMARY KEY,
                                name text NOT NULL,
                                phone text UNIQUE NOT NULL,
                                password text NOT NULL,
                                role text DEFAULT 'client'
                                );""")
                cursor.execute("""
                    SELECT COUNT(*)
                    FROM information_schema.tables
                    WHERE table_schema = 'public' AND table_name = 'appointments';
                """)
                if cursor.fetchone()[0] == 0:
                    cursor.execute("""
                            CREATE TABLE appointments (
                                id uuid DEFAULT gen_random_uuid() PRIMARY KEY,
                                service_id uuid REFERENCES services (id) ON DELETE SET NULL,
                                user_id uuid REFERENCES users (id),
                                date text NOT NULL,
                                time text NOT NULL,
                                status text DEFAULT 'pending'
                                    CHECK (status IN ('pending', 'confirmed', 'completed', 'cancelled')),
                                created_at timestamp with time zone DEFAULT CURRENT_TIMESTAMP NOT NULL
                                );""")
                # One live (not cancelled) appointment per slot
                cursor.execute("""
                    CREATE UNIQUE INDEX IF NOT EXISTS appointments_live_slot
                    ON appointments (date, time) WHERE status <> 'cancelled';
                """)
