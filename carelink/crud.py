from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carelink import models, schemas
from carelink.database import SessionLocal
from carelink.utils.events import bus
import carelink.auth.utils_auth as auth_utils


class NotFound(LookupError):
    pass


class InvalidTransition(ValueError):
    pass


def utcnow() -> datetime:
    return datetime.utcnow()


def watch(topic: str, load: Callable[[Session], object], callback: Callable, session_factory=None) -> Callable[[], None]:
    """Deliver ``load(db)`` to ``callback`` now and after every write to ``topic``.

    Returns the unsubscribe callable.
    """
    factory = session_factory or SessionLocal

    def refresh(_message=None):
        db = factory()
        try:
            result = load(db)
        finally:
            db.close()
        callback(result)

    refresh()
    return bus.subscribe(topic, refresh)


def _owner_field(model, role: str):
    if role == "patient":
        return model.patient_id
    if role == "doctor":
        return model.doctor_id
    raise ValueError(f"Unsupported role for this listing: {role}")


def _get_or_404(db: Session, model, record_id: str):
    record = db.query(model).filter(model.id == record_id).first()
    if not record:
        raise NotFound(f"{model.__name__} {record_id} not found")
    return record


# Users and hospital profiles

def create_user(db: Session, user: schemas.UserCreate):
    exists = db.query(models.User).filter(models.User.email == user.email).first()
    if exists:
        raise ValueError("Email already in use")

    db_user = models.User(
        full_name=user.full_name,
        email=user.email,
        phone=user.phone,
        role=user.role,
        password_hash=auth_utils.hash_password(user.password),
        lat=user.lat,
        lon=user.lon,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user

def get_user(db: Session, user_id: str):
    return db.query(models.User).filter(models.User.id == user_id).first()

def get_user_by_email(db: Session, email: str):
    return db.query(models.User).filter(models.User.email == email).first()

def authenticate_user(db: Session, email: str, password: str):
    user = get_user_by_email(db, email)
    if not user or not auth_utils.verify_password(password, user.password_hash):
        return None
    return user

def update_hospital_profile(db: Session, hospital: models.User, profile: schemas.HospitalProfile):
    if hospital.role != "hospital":
        raise ValueError("Only hospital accounts have a hospital profile")
    hospital.hospital_data = profile.model_dump()
    db.commit()
    db.refresh(hospital)
    return hospital

def list_hospitals(db: Session) -> List[models.User]:
    return db.query(models.User).filter(models.User.role == "hospital").all()


# Call signaling

def initiate_call(db: Session, call: schemas.CallCreate) -> str:
    db_call = models.Call(
        patient_id=call.patient_id,
        doctor_id=call.doctor_id,
        patient_name=call.patient_name,
        doctor_name=call.doctor_name,
        appointment_id=call.appointment_id,
        call_type=call.call_type,
        status="initiating",
        start_time=utcnow(),
    )
    db.add(db_call)
    db.commit()

    db_call.status = "ringing"
    db.commit()
    bus.publish("calls", db_call.id)
    return db_call.id

def _set_call_status(db: Session, call_id: str, status: str, ended: bool = False):
    call = _get_or_404(db, models.Call, call_id)
    call.status = status
    if ended:
        call.end_time = utcnow()
    db.commit()
    db.refresh(call)
    bus.publish("calls", call.id)
    return call

def answer_call(db: Session, call_id: str):
    return _set_call_status(db, call_id, "connected")

def decline_call(db: Session, call_id: str):
    return _set_call_status(db, call_id, "declined", ended=True)

def mark_call_missed(db: Session, call_id: str):
    return _set_call_status(db, call_id, "missed", ended=True)

def end_call(db: Session, call_id: str):
    call = _get_or_404(db, models.Call, call_id)
    end_time = utcnow()
    duration = 0
    if call.start_time:
        duration = int((end_time - call.start_time).total_seconds())
    call.status = "ended"
    call.end_time = end_time
    call.duration = duration
    db.commit()
    db.refresh(call)
    bus.publish("calls", call.id)
    return call

def list_active_calls(db: Session, user_id: str, user_type: str) -> List[models.Call]:
    field = _owner_field(models.Call, user_type)
    return (
        db.query(models.Call)
        .filter(field == user_id, models.Call.status.in_(["ringing", "connected"]))
        .order_by(models.Call.start_time.desc())
        .all()
    )

def call_snapshot(calls: List[models.Call]) -> dict:
    # first match wins when several calls ring at once
    incoming = next((c for c in calls if c.status == "ringing"), None)
    current = next((c for c in calls if c.status == "connected"), None)
    return {"active_calls": calls, "incoming_call": incoming, "current_call": current}

def subscribe_to_incoming_calls(user_id: str, user_type: str, callback, session_factory=None):
    return watch(
        "calls",
        lambda db: call_snapshot(list_active_calls(db, user_id, user_type)),
        callback,
        session_factory,
    )


# Hospital queue

def _today_entries(db: Session, day):
    return db.query(models.QueueEntry).filter(models.QueueEntry.queue_day == day).all()

def estimate_wait_time(priority: str, waiting_count: int) -> int:
    if priority == "emergency":
        return 0
    if priority == "urgent":
        return waiting_count * 5
    return waiting_count * 10

def add_to_queue(db: Session, entry: schemas.QueueCreate, max_attempts: int = 3):
    for attempt in range(max_attempts):
        now = utcnow()
        day = now.date()
        entries = _today_entries(db, day)
        next_number = max((e.queue_number or 0 for e in entries), default=0) + 1
        waiting = [
            e for e in entries
            if e.status == "waiting" and (not entry.department or e.department == entry.department)
        ]

        db_entry = models.QueueEntry(
            patient_id=entry.patient_id,
            doctor_id=entry.doctor_id,
            patient_name=entry.patient_name,
            doctor_name=entry.doctor_name,
            queue_day=day,
            queue_number=next_number,
            status="waiting",
            department=entry.department or "general",
            priority=entry.priority,
            reason=entry.reason or "",
            appointment_id=entry.appointment_id,
            call_id=entry.call_id,
            estimated_wait_time=estimate_wait_time(entry.priority, len(waiting)),
            created_at=now,
        )
        db.add(db_entry)
        try:
            db.commit()
        except IntegrityError:
            # another request took this number first
            db.rollback()
            if attempt == max_attempts - 1:
                raise
            continue
        db.refresh(db_entry)
        bus.publish("hospital_queue", db_entry.id)
        return db_entry

def update_queue_status(db: Session, queue_id: str, status: str):
    entry = _get_or_404(db, models.QueueEntry, queue_id)
    entry.status = status
    if status == "in-progress":
        entry.started_at = utcnow()
    elif status in ("completed", "cancelled"):
        entry.completed_at = utcnow()
    db.commit()
    db.refresh(entry)
    bus.publish("hospital_queue", entry.id)
    return entry

def list_queue(db: Session, department: Optional[str] = None) -> List[models.QueueEntry]:
    q = db.query(models.QueueEntry).filter(models.QueueEntry.status.in_(["waiting", "in-progress"]))
    if department:
        q = q.filter(models.QueueEntry.department == department)
    return q.order_by(models.QueueEntry.created_at.asc()).all()

def subscribe_to_queue(callback, department: Optional[str] = None, session_factory=None):
    return watch("hospital_queue", lambda db: list_queue(db, department), callback, session_factory)


# Beds and bookings

def add_bed(db: Session, bed: schemas.BedCreate, hospital_id: Optional[str] = None):
    db_bed = models.Bed(**bed.model_dump(), hospital_id=hospital_id)
    db.add(db_bed)
    db.commit()
    db.refresh(db_bed)
    bus.publish("beds", db_bed.id)
    return db_bed

def list_beds(db: Session, department: Optional[str] = None, hospital_id: Optional[str] = None) -> List[models.Bed]:
    q = db.query(models.Bed)
    if hospital_id:
        q = q.filter(models.Bed.hospital_id == hospital_id)
    if department:
        q = q.filter(models.Bed.department == department)
    return q.all()

def get_beds_by_ward(db: Session, ward: str, hospital_id: Optional[str] = None) -> List[models.Bed]:
    return [b for b in list_beds(db, hospital_id=hospital_id) if b.ward == ward]

def get_bed_stats(db: Session, hospital_id: Optional[str] = None) -> dict:
    beds = list_beds(db, hospital_id=hospital_id)
    return {
        "total": len(beds),
        "available": len([b for b in beds if b.status == "available"]),
        "occupied": len([b for b in beds if b.status == "occupied"]),
        "maintenance": len([b for b in beds if b.status == "maintenance"]),
    }

def check_bed_availability(db: Session, department: Optional[str] = None, urgency: Optional[str] = None,
                           hospital_id: Optional[str] = None) -> List[models.Bed]:
    beds = list_beds(db, department, hospital_id)
    available = [b for b in beds if b.status == "available"]
    # emergencies may also take beds that are only down for maintenance
    if urgency == "emergency":
        available += [b for b in beds if b.status == "maintenance"]
    return available

def update_bed_status(db: Session, bed_id: str, status: str, patient_id: Optional[str] = None,
                      patient_name: Optional[str] = None, admission_date: Optional[datetime] = None):
    bed = _get_or_404(db, models.Bed, bed_id)
    bed.status = status
    bed.patient_id = patient_id
    bed.patient_name = patient_name
    bed.admission_date = admission_date
    if status != "reserved":
        bed.reserved_until = None
    db.commit()
    db.refresh(bed)
    bus.publish("beds", bed.id)
    return bed

def book_bed(db: Session, booking: schemas.BedBookingCreate):
    bed = _get_or_404(db, models.Bed, booking.bed_id)
    if bed.status in ("occupied", "reserved"):
        raise ValueError(f"Bed {bed.bed_number} is not available")

    now = utcnow()
    emergency = booking.urgency == "emergency"
    db_booking = models.BedBooking(
        patient_id=booking.patient_id,
        doctor_id=booking.doctor_id,
        patient_name=booking.patient_name,
        doctor_name=booking.doctor_name,
        bed_id=bed.id,
        bed_number=bed.bed_number,
        ward=booking.ward,
        department=booking.department,
        urgency=booking.urgency,
        reason=booking.reason or "",
        status="approved" if emergency else "pending",
        requested_at=now,
        approved_at=now if emergency else None,
        appointment_id=booking.appointment_id,
        call_id=booking.call_id,
    )
    db.add(db_booking)

    # emergency bookings are auto-approved and hold the bed for a day
    if emergency:
        bed.status = "reserved"
        bed.patient_id = booking.patient_id
        bed.patient_name = booking.patient_name
        bed.reserved_until = now + timedelta(hours=24)

    db.commit()
    db.refresh(db_booking)
    bus.publish("bed_bookings", db_booking.id)
    if emergency:
        bus.publish("beds", bed.id)
    return db_booking

def list_bookings(db: Session, user_id: str, role: str) -> List[models.BedBooking]:
    field = _owner_field(models.BedBooking, role)
    return db.query(models.BedBooking).filter(field == user_id).all()

def subscribe_to_beds(callback, department: Optional[str] = None, hospital_id: Optional[str] = None,
                      session_factory=None):
    return watch("beds", lambda db: list_beds(db, department, hospital_id), callback, session_factory)

def subscribe_to_bookings(user_id: str, role: str, callback, session_factory=None):
    return watch("bed_bookings", lambda db: list_bookings(db, user_id, role), callback, session_factory)


# Appointments

def create_appointment(db: Session, patient: models.User, appt: schemas.AppointmentCreate):
    db_appt = models.Appointment(
        patient_id=patient.id,
        patient_name=patient.full_name,
        doctor_id=appt.doctor_id,
        doctor_name=appt.doctor_name,
        date=appt.date,
        time=appt.time,
        reason=appt.reason,
        notes=appt.notes,
        status="pending",
        created_at=utcnow(),
    )
    db.add(db_appt)
    db.commit()
    db.refresh(db_appt)
    bus.publish("appointments", db_appt.id)
    return db_appt

def list_appointments(db: Session, user_id: str, role: str) -> List[models.Appointment]:
    field = _owner_field(models.Appointment, role)
    return (
        db.query(models.Appointment)
        .filter(field == user_id)
        .order_by(models.Appointment.date.desc())
        .all()
    )

def update_appointment_status(db: Session, appointment_id: str, status: str):
    appt = _get_or_404(db, models.Appointment, appointment_id)
    appt.status = status
    db.commit()
    db.refresh(appt)
    bus.publish("appointments", appt.id)
    return appt

def subscribe_to_appointments(user_id: str, role: str, callback, session_factory=None):
    return watch("appointments", lambda db: list_appointments(db, user_id, role), callback, session_factory)


# Prescriptions

def create_prescription(db: Session, doctor: models.User, rx: schemas.PrescriptionCreate):
    db_rx = models.Prescription(
        patient_id=rx.patient_id,
        patient_name=rx.patient_name,
        doctor_id=doctor.id,
        doctor_name=doctor.full_name,
        medications=[m.model_dump() for m in rx.medications],
        diagnosis=rx.diagnosis or "",
        notes=rx.notes or "",
        call_id=rx.call_id,
        appointment_id=rx.appointment_id,
        created_at=utcnow(),
    )
    db.add(db_rx)
    db.commit()
    db.refresh(db_rx)
    bus.publish("prescriptions", db_rx.id)
    return db_rx

def list_prescriptions(db: Session, user_id: str, role: str) -> List[models.Prescription]:
    field = _owner_field(models.Prescription, role)
    return (
        db.query(models.Prescription)
        .filter(field == user_id)
        .order_by(models.Prescription.created_at.desc())
        .all()
    )

def subscribe_to_prescriptions(user_id: str, role: str, callback, session_factory=None):
    return watch("prescriptions", lambda db: list_prescriptions(db, user_id, role), callback, session_factory)


# Staff

def add_staff(db: Session, hospital_id: str, staff: schemas.StaffCreate):
    now = utcnow()
    data = staff.model_dump()
    data["hire_date"] = data.get("hire_date") or now
    db_staff = models.Staff(**data, hospital_id=hospital_id, created_at=now, updated_at=now)
    db.add(db_staff)
    db.commit()
    db.refresh(db_staff)
    bus.publish("staff", db_staff.id)
    return db_staff

def update_staff(db: Session, staff_id: str, updates: schemas.StaffUpdate):
    member = _get_or_404(db, models.Staff, staff_id)
    for key, value in updates.model_dump(exclude_unset=True).items():
        setattr(member, key, value)
    member.updated_at = utcnow()
    db.commit()
    db.refresh(member)
    bus.publish("staff", member.id)
    return member

def delete_staff(db: Session, staff_id: str):
    member = _get_or_404(db, models.Staff, staff_id)
    db.delete(member)
    db.commit()
    bus.publish("staff", staff_id)

def list_staff(db: Session, hospital_id: str) -> List[models.Staff]:
    return (
        db.query(models.Staff)
        .filter(models.Staff.hospital_id == hospital_id)
        .order_by(models.Staff.created_at.desc())
        .all()
    )

def subscribe_to_staff(hospital_id: str, callback, session_factory=None):
    return watch("staff", lambda db: list_staff(db, hospital_id), callback, session_factory)

def get_staff_stats(db: Session, hospital_id: str) -> dict:
    staff = list_staff(db, hospital_id)
    return {
        "total": len(staff),
        "active": len([s for s in staff if s.status == "active"]),
        "inactive": len([s for s in staff if s.status == "inactive"]),
        "on_leave": len([s for s in staff if s.status == "on_leave"]),
        "by_role": {role: len([s for s in staff if s.role == role]) for role in schemas.STAFF_ROLES},
        "by_department": {
            dept: len([s for s in staff if s.department == dept]) for dept in schemas.STAFF_DEPARTMENTS
        },
    }


# Mood tracking

LOW_MOOD_THRESHOLD = 40
ALERT_DAYS = 2
ALERT_WINDOW_DAYS = 7
LOW_MOOD_MESSAGE = "You've sounded low for 2 days. Want to talk?"

def get_mood_history(db: Session, user_id: str, days: int = 30) -> List[models.MoodEntry]:
    cutoff = utcnow() - timedelta(days=days)
    return (
        db.query(models.MoodEntry)
        .filter(models.MoodEntry.user_id == user_id, models.MoodEntry.created_at >= cutoff)
        .order_by(models.MoodEntry.created_at.desc())
        .all()
    )

def check_low_mood_alert(db: Session, user_id: str) -> dict:
    """Alert when each of the latest ALERT_DAYS entries of the past week scores below the threshold."""
    recent = get_mood_history(db, user_id, ALERT_WINDOW_DAYS)[:ALERT_DAYS]
    if len(recent) < ALERT_DAYS or any(e.score >= LOW_MOOD_THRESHOLD for e in recent):
        return {"show": False, "message": "", "consecutive_low_days": 0}
    return {"show": True, "message": LOW_MOOD_MESSAGE, "consecutive_low_days": ALERT_DAYS}

def add_mood_entry(db: Session, user_id: str, entry: schemas.MoodEntryCreate) -> models.MoodEntry:
    now = utcnow()
    db_entry = models.MoodEntry(
        user_id=user_id,
        date=now.date().isoformat(),
        score=entry.score,
        tone=entry.tone,
        energy=entry.energy,
        transcription=entry.transcription or "",
        analysis=entry.analysis,
        created_at=now,
    )
    db.add(db_entry)
    db.commit()
    db.refresh(db_entry)
    return db_entry


# Patient and doctor messages

def chat_id_for(user_a: str, user_b: str) -> str:
    return "_".join(sorted([user_a, user_b]))

def send_message(db: Session, sender: models.User, receiver_id: str, text: str) -> models.Message:
    text = text.strip()
    if not text:
        raise ValueError("Message text is empty")
    default_name = "Patient" if sender.role == "patient" else "Doctor"
    db_message = models.Message(
        chat_id=chat_id_for(sender.id, receiver_id),
        sender_id=sender.id,
        receiver_id=receiver_id,
        sender_name=sender.full_name or default_name,
        text=text,
        created_at=utcnow(),
    )
    db.add(db_message)
    db.commit()
    db.refresh(db_message)
    bus.publish("messages", db_message.chat_id)
    return db_message

def list_messages(db: Session, chat_id: str) -> List[models.Message]:
    return (
        db.query(models.Message)
        .filter(models.Message.chat_id == chat_id)
        .order_by(models.Message.created_at.asc())
        .all()
    )

def subscribe_to_messages(user_a: str, user_b: str, callback, session_factory=None):
    chat_id = chat_id_for(user_a, user_b)
    return watch("messages", lambda db: list_messages(db, chat_id), callback, session_factory)
