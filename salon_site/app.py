from datetime import datetime
import logging
import os
import secrets
from functools import wraps
from flask import Flask, render_template, request, flash, redirect, g, url_for, jsonify, session
from flask_debugtoolbar import DebugToolbarExtension
from werkzeug.security import generate_password_hash
from salon_site.booking import database
from salon_site.booking import booking_utils as util
from salon_site.booking.booking_service import BookingSequencer
from salon_site.booking.error_utils import (AvailabilityLookupError, NotFoundError, SlotUnavailableError, StoreError,
                                            TimeValidationError, ValidationError)
from salon_site.booking.identity import IdentityProvider
from salon_site.booking.models import AppointmentStatus
from salon_site.booking.session_context import SessionContext
logger = logging.getLogger(__name__)

DEFAULT_ADMIN_EMAIL = 'admin@salonbeleza.com.br'


def create_app():
    app = Flask(__name__)
    app.secret_key = os.environ.get('SECRET_KEY') or secrets.token_hex(32) #256 bit
    app.config['SECRET_KEY'] = app.secret_key
    if os.environ.get('FLASK_ENV') == 'production':
        app.config['DOMAIN'] = os.environ.get('DOMAIN', 'https://www.salonbeleza.com.br')
    else:
        app.config['DOMAIN'] = 'http://localhost:5003'
        app.config["DEBUG_TB_INTERCEPT_REDIRECTS"] = False  # Prevents redirect issues
    # Must set ADMIN_PASSWORD in prod
    admin_email = os.environ.get('ADMIN_EMAIL', DEFAULT_ADMIN_EMAIL).strip().lower()
    app.config['ADMINS'] = {admin_email: generate_password_hash(os.environ.get('ADMIN_PASSWORD') or 'secret')}
    app.config['PHONE_REGION'] = os.environ.get('PHONE_REGION', 'BR')
    # Swapped out by the tests
    app.config['STORE_FACTORY'] = database.DatabasePersistence
    app.config['CLOCK'] = datetime.now
    return app

app = create_app()
# Set to make Flask debug toolbar work
if not os.environ.get('FLASK_ENV') == 'production':
    app.debug = True


# Use decorator to create g.db instance within request context window for functions that require it to conserve resources and prevent N +1 instances
def instantiate_database(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.db = app.config['STORE_FACTORY']()
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not g.context.is_admin:
            flash("Sign in as an administrator to access the admin panel.", "error")
            return redirect(url_for('signin'))
        return f(*args, **kwargs)
    return decorated_function


def sequencer():
    return BookingSequencer(g.db, app.config['CLOCK'])


def identity_provider():
    return IdentityProvider(g.db, app.config['ADMINS'], app.config['PHONE_REGION'])


# Session identity is loaded once per request and written back when the response leaves
@app.before_request
def load_session_context():
    g.context = SessionContext.load(session)

@app.after_request
def save_session_context(response):
    context = g.get('context')
    if context is not None:
        context.save(session)
    return response

@app.context_processor
def inject_context():
    return {"context": g.get('context') or SessionContext()}


@app.route('/')
def home():
    return redirect('/index')

# Landing page with the service catalog
@app.route("/index")
@instantiate_database
def index():
    services = g.db.list_services()
    return render_template('index.html', services=services)

# Booking wizard step 1: pick a service
@app.route("/booking", methods=['GET'])
@instantiate_database
def choose_service():
    services = g.db.list_services()
    return render_template('booking.html', services=services)

# Booking wizard steps 2 and 3: pick a date, then one of its slots
@app.route("/booking/<service_id>", methods=['GET'])
@instantiate_database
def choose_slot(service_id):
    service = g.db.get_service(service_id)
    if service is None:
        flash("That service is not available.", "error")
        return redirect(url_for('choose_service'))

    now = app.config['CLOCK']()
    raw_date = request.args.get('date')
    slots = None
    lookup_failed = False
    if raw_date:
        try:
            day = util.parse_date(raw_date)
        except TimeValidationError as e:
            flash(e.message, "error")
            return redirect(url_for('choose_slot', service_id=service_id))
        try:
            slots = sequencer().available_slots(day)
        except AvailabilityLookupError as e:
            # Distinct from a closed day: tell the client to retry
            lookup_failed = True
            flash(e.message + " Please try again.", "error")

    status = 503 if lookup_failed else 200
    return render_template('booking_slots.html', service=service, date=raw_date, slots=slots,
                           lookup_failed=lookup_failed, today=now.date().isoformat()), status

@app.route("/booking/confirm", methods=['POST'])
@instantiate_database
def confirm_booking():
    try:
        selection = util.parse_booking_selection(request.form)
    except ValidationError as e:
        flash(e.message, "error")
        service_id = request.form.get('service_id')
        if service_id:
            return redirect(url_for('choose_slot', service_id=service_id))
        return redirect(url_for('choose_service'))
    return finish_booking(lambda: sequencer().submit(g.context, selection), selection)

def finish_booking(submit, selection):
    """
    Runs a booking submission and turns the outcome into a redirect.
    Shared by the confirm button and by sign in/registration resuming a parked booking.
    """
    back_to_slots = url_for('choose_slot', service_id=selection.service_id, date=selection.date)
    try:
        outcome = submit()
    except SlotUnavailableError as e:
        flash(e.message, "error")
        return redirect(back_to_slots)
    except NotFoundError as e:
        flash(e.message, "error")
        return redirect(url_for('choose_service'))
    except ValidationError as e:
        flash(e.message, "error")
        return redirect(back_to_slots)
    except StoreError as e:
        logger.error("Booking failed: %s", e.message)
        flash("We could not confirm your booking. Please try again.", "error")
        return redirect(back_to_slots)

    if outcome is None:
        return redirect(url_for('index'))
    if outcome.needs_authentication:
        flash("Sign in or create an account to confirm your booking.", "info")
        return redirect(url_for('signin'))
    flash("Your appointment is booked!", "success")
    return redirect(url_for('booking_success', appointment_id=outcome.appointment.id))

@app.route("/booking/success/<appointment_id>", methods=['GET'])
@instantiate_database
def booking_success(appointment_id):
    appointment = g.db.get_appointment(appointment_id)
    principal = g.context.principal
    if appointment is None or principal is None or appointment.user_id != principal.id:
        flash("Appointment not found.", "error")
        return redirect(url_for('index'))
    service = g.db.get_service(appointment.service_id) if appointment.service_id else None
    return render_template('booking_success.html', appointment=appointment, service=service)

# JSON slot lookup used by the date pickers
@app.route("/api/slots", methods=['GET'])
@instantiate_database
def api_slots():
    try:
        day = util.parse_date(request.args.get('date'))
    except TimeValidationError as e:
        return jsonify({"error": e.message}), 422

    held_time = None
    appointment_id = request.args.get('appointment_id')
    # Only the admin edit screen may hold a slot open for an existing appointment
    if appointment_id and g.context.is_admin:
        appointment = g.db.get_appointment(appointment_id)
        if appointment is None:
            return jsonify({"error": "Appointment not found."}), 404
        if appointment.date == day.isoformat() and appointment.status is not AppointmentStatus.CANCELLED:
            held_time = appointment.time

    try:
        slots = sequencer().available_slots(day, held_time=held_time)
    except AvailabilityLookupError as e:
        return jsonify({"error": e.message}), 503
    return jsonify({"date": day.isoformat(), "open": bool(slots), "slots": [slot.to_dict() for slot in slots]})


@app.route("/users/signin", methods=['GET'])
def signin():
    return render_template('signin.html')

@app.route("/users/signin", methods=['POST'])
@instantiate_database
def submit_signin():
    identifier = request.form.get('identifier', '').strip()
    password = request.form.get('password', '')
    if not identifier or not password:
        flash("Fill in your login and password.", "error")
        return render_template('signin.html', identifier=identifier), 422

    principal = identity_provider().authenticate(identifier, password)
    if principal is None:
        flash("Invalid credentials", "error")
        return render_template('signin.html', identifier=identifier), 422

    g.context.sign_in(principal)
    flash(f"Welcome, {principal.name}!", "success")
    if principal.is_admin:
        g.context.pending = None
        return redirect(url_for('admin'))
    return resume_or_home()

@app.route("/users/register", methods=['GET'])
def register():
    return render_template('register.html')

@app.route("/users/register", methods=['POST'])
@instantiate_database
def submit_registration():
    try:
        form = util.parse_registration(request.form, app.config['PHONE_REGION'])
        principal = identity_provider().register(form)
    except ValidationError as e:
        flash(e.message, "error")
        return render_template('register.html', name=request.form.get('name', ''),
                               phone=request.form.get('phone', '')), 422

    g.context.sign_in(principal)
    flash(f"Welcome, {principal.name}!", "success")
    return resume_or_home()

def resume_or_home():
    # Confirm the booking the client picked before being asked to sign in
    selection = g.context.pending
    if selection is None:
        return redirect(url_for('index'))
    return finish_booking(lambda: sequencer().resume(g.context), selection)

@app.route("/users/signout", methods=['POST'])
def signout():
    g.context.clear()
    flash("You have been signed out.", "success")
    return redirect(url_for('index'))


# Admin panel: appointments and services tabs
@app.route("/admin", methods=['GET'])
@admin_required
@instantiate_database
def admin():
    tab = request.args.get('tab', 'appointments')
    if tab not in ('appointments', 'services'):
        tab = 'appointments'
    appointments = g.db.list_appointments()
    services = g.db.list_services()
    return render_template('admin.html', tab=tab, appointments=appointments, services=services)

@app.route("/admin/services", methods=['POST'])
@admin_required
@instantiate_database
def add_service():
    try:
        form = util.parse_service_form(request.form)
    except ValidationError as e:
        flash(e.message, "error")
        return redirect(url_for('admin', tab='services'))
    service = g.db.add_service(form)
    flash(f"{service.title} has been added.", "success")
    return redirect(url_for('admin', tab='services'))

@app.route("/admin/services/<service_id>/edit", methods=['GET'])
@admin_required
@instantiate_database
def edit_service(service_id):
    service = g.db.get_service(service_id)
    if service is None:
        flash("Service not found.", "error")
        return redirect(url_for('admin', tab='services'))
    return render_template('admin_service_edit.html', service=service)

@app.route("/admin/services/<service_id>/edit", methods=['POST'])
@admin_required
@instantiate_database
def update_service(service_id):
    try:
        changes = util.parse_service_update(request.form)
    except ValidationError as e:
        flash(e.message, "error")
        return redirect(url_for('edit_service', service_id=service_id))
    if not g.db.update_service(service_id, changes):
        flash("Service not found.", "error")
        return redirect(url_for('admin', tab='services'))
    flash("Service has been updated.", "success")
    return redirect(url_for('admin', tab='services'))

@app.route("/admin/services/<service_id>/delete", methods=['POST'])
@admin_required
@instantiate_database
def delete_service(service_id):
    if g.db.delete_service(service_id):
        flash("Service has been deleted.", "success")
    else:
        flash("Service not found.", "error")
    return redirect(url_for('admin', tab='services'))

@app.route("/admin/appointments/<appointment_id>/edit", methods=['GET'])
@admin_required
@instantiate_database
def edit_appointment(appointment_id):
    appointment = g.db.get_appointment(appointment_id)
    if appointment is None:
        flash("Appointment not found.", "error")
        return redirect(url_for('admin'))

    raw_date = request.args.get('date', appointment.date)
    try:
        day = util.parse_date(raw_date)
    except TimeValidationError as e:
        flash(e.message, "error")
        return redirect(url_for('edit_appointment', appointment_id=appointment_id))

    # The appointment's own time is offered even though it is booked (by itself)
    held_time = None
    if day.isoformat() == appointment.date and appointment.status is not AppointmentStatus.CANCELLED:
        held_time = appointment.time
    slots = None
    lookup_failed = False
    try:
        slots = sequencer().available_slots(day, held_time=held_time)
    except AvailabilityLookupError as e:
        lookup_failed = True
        flash(e.message + " Please try again.", "error")

    services = g.db.list_services()
    status = 503 if lookup_failed else 200
    return render_template('admin_appointment_edit.html', appointment=appointment, services=services,
                           date=day.isoformat(), slots=slots, lookup_failed=lookup_failed,
                           statuses=list(AppointmentStatus)), status

@app.route("/admin/appointments/<appointment_id>/edit", methods=['POST'])
@admin_required
@instantiate_database
def update_appointment(appointment_id):
    appointment = g.db.get_appointment(appointment_id)
    if appointment is None:
        flash("Appointment not found.", "error")
        return redirect(url_for('admin'))
    try:
        changes = util.parse_appointment_update(request.form)
        sequencer().reschedule(appointment, changes)
    except (ValidationError, NotFoundError, SlotUnavailableError) as e:
        flash(e.message, "error")
        return redirect(url_for('edit_appointment', appointment_id=appointment_id,
                                date=request.form.get('date') or appointment.date))
    flash("Appointment has been updated.", "success")
    return redirect(url_for('admin'))

@app.route("/admin/appointments/<appointment_id>/cancel", methods=['POST'])
@admin_required
@instantiate_database
def cancel_appointment(appointment_id):
    appointment = g.db.get_appointment(appointment_id)
    if appointment is None:
        flash("Appointment not found.", "error")
        return redirect(url_for('admin'))
    sequencer().cancel(appointment)
    flash("Appointment has been cancelled.", "success")
    return redirect(url_for('admin'))


@app.errorhandler(404)
def error_handler(error):
    flash("An error occurred.", "error")
    return redirect("/index")

# Record store is down or rejected a query
@app.errorhandler(StoreError)
def handle_store_error(error):
    logger.error("Store error: %s", error.message)
    if request.path.startswith('/api/'):
        return jsonify({"error": error.message}), 503
    return render_template('error.html', message=error.message), 503


if __name__ == '__main__':
    # production
    if os.environ.get('FLASK_ENV') == 'production':
       app.run(debug=False)
    else:
       toolbar = DebugToolbarExtension(app)
       app.run(debug=True, port=5003)
