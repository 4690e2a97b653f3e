import uuid

from sqlalchemy import Column, Integer, String, Boolean, Float, DateTime, Date, Text, JSON, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import relationship
from carelink.database import Base


def new_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    __tablename__ = "users"
    id = Column(String(32), primary_key=True, default=new_id)
    full_name = Column(String(100))
    email = Column(String(100), unique=True, index=True)
    phone = Column(String(20), nullable=True)
    role = Column(String(20), default="patient", index=True)
    password_hash = Column(String(255))
    lat = Column(Float, nullable=True)
    lon = Column(Float, nullable=True)
    # hospital profile: hospital_name, available_beds, icu_beds,
    # ambulances_available, coordinates {latitude, longitude}
    hospital_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class EmergencyAlert(Base):
    __tablename__ = "emergency_alerts"
    id = Column(String(32), primary_key=True, default=new_id)
    patient_id = Column(String(32), ForeignKey("users.id"), index=True)
    patient_name = Column(String(100))
    patient_phone = Column(String(20))
    type = Column(String(30))
    severity = Column(JSON)
    latitude = Column(Float)
    longitude = Column(Float)
    address = Column(String(255))
    description = Column(Text)
    status = Column(String(20), default="active", index=True)
    responding_hospitals = Column(JSON, default=list)
    ambulance_dispatched = Column(Boolean, default=False)
    video_stream_url = Column(String(255), nullable=True)
    estimated_arrival_time = Column(Integer, nullable=True)
    resolution_notes = Column(Text, nullable=True)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    patient = relationship("User", foreign_keys=[patient_id])


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(String(32), primary_key=True, default=new_id)
    type = Column(String(30), default="emergency_alert")
    hospital_id = Column(String(32), ForeignKey("users.id"), index=True)
    emergency_alert_id = Column(String(32), ForeignKey("emergency_alerts.id"), index=True)
    status = Column(String(20), default="pending")
    created_at = Column(DateTime)


class Call(Base):
    __tablename__ = "calls"
    id = Column(String(32), primary_key=True, default=new_id)
    patient_id = Column(String(32), index=True)
    doctor_id = Column(String(32), index=True)
    patient_name = Column(String(100))
    doctor_name = Column(String(100))
    appointment_id = Column(String(32), nullable=True)
    status = Column(String(20), default="initiating", index=True)
    call_type = Column(String(10), default="video")
    start_time = Column(DateTime)
    end_time = Column(DateTime, nullable=True)
    duration = Column(Integer, nullable=True)


class Bed(Base):
    __tablename__ = "beds"
    id = Column(String(32), primary_key=True, default=new_id)
    bed_number = Column(String(20))
    ward = Column(String(50), index=True)
    department = Column(String(50), index=True)
    type = Column(String(10), default="general")
    status = Column(String(20), default="available")
    patient_id = Column(String(32), nullable=True)
    patient_name = Column(String(100), nullable=True)
    admission_date = Column(DateTime, nullable=True)
    reserved_until = Column(DateTime, nullable=True)
    hospital_id = Column(String(32), ForeignKey("users.id"), nullable=True, index=True)


class BedBooking(Base):
    __tablename__ = "bed_bookings"
    id = Column(String(32), primary_key=True, default=new_id)
    patient_id = Column(String(32), index=True)
    doctor_id = Column(String(32), index=True)
    patient_name = Column(String(100))
    doctor_name = Column(String(100))
    bed_id = Column(String(32), ForeignKey("beds.id"))
    bed_number = Column(String(20))
    ward = Column(String(50))
    department = Column(String(50))
    reason = Column(Text, default="")
    urgency = Column(String(20), default="normal")
    status = Column(String(20), default="pending")
    requested_at = Column(DateTime)
    approved_at = Column(DateTime, nullable=True)
    appointment_id = Column(String(32), nullable=True)
    call_id = Column(String(32), nullable=True)

    bed = relationship("Bed", foreign_keys=[bed_id])


class QueueEntry(Base):
    __tablename__ = "hospital_queue"
    __table_args__ = (UniqueConstraint("queue_day", "queue_number", name="uq_queue_day_number"),)
    id = Column(String(32), primary_key=True, default=new_id)
    patient_id = Column(String(32), index=True)
    doctor_id = Column(String(32), index=True)
    patient_name = Column(String(100))
    doctor_name = Column(String(100))
    appointment_id = Column(String(32), nullable=True)
    call_id = Column(String(32), nullable=True)
    queue_day = Column(Date, index=True)
    queue_number = Column(Integer)
    status = Column(String(20), default="waiting", index=True)
    department = Column(String(50), default="general")
    priority = Column(String(20), default="normal")
    reason = Column(Text, default="")
    estimated_wait_time = Column(Integer, default=0)
    created_at = Column(DateTime)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)


class Appointment(Base):
    __tablename__ = "appointments"
    id = Column(String(32), primary_key=True, default=new_id)
    patient_id = Column(String(32), index=True)
    doctor_id = Column(String(32), index=True)
    patient_name = Column(String(100))
    doctor_name = Column(String(100))
    date = Column(DateTime)
    time = Column(String(20))
    status = Column(String(20), default="pending")
    reason = Column(Text, default="")
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime)


class Prescription(Base):
    __tablename__ = "prescriptions"
    id = Column(String(32), primary_key=True, default=new_id)
    patient_id = Column(String(32), index=True)
    doctor_id = Column(String(32), index=True)
    patient_name = Column(String(100))
    doctor_name = Column(String(100))
    call_id = Column(String(32), nullable=True)
    appointment_id = Column(String(32), nullable=True)
    medications = Column(JSON, default=list)
    diagnosis = Column(Text, default="")
    notes = Column(Text, default="")
    created_at = Column(DateTime)


class Staff(Base):
    __tablename__ = "staff"
    id = Column(String(32), primary_key=True, default=new_id)
    hospital_id = Column(String(32), ForeignKey("users.id"), index=True)
    name = Column(String(100))
    email = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    role = Column(String(30), default="other")
    department = Column(String(30), default="general")
    status = Column(String(20), default="active")
    hire_date = Column(DateTime)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class MoodEntry(Base):
    __tablename__ = "mood_entries"
    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id"), index=True)
    date = Column(String(10))
    score = Column(Integer)
    tone = Column(String(20))
    energy = Column(String(20))
    transcription = Column(Text, default="")
    # voice analysis: indicators, detected_mood, confidence
    analysis = Column(JSON, nullable=True)
    created_at = Column(DateTime, index=True)


class Message(Base):
    __tablename__ = "messages"
    id = Column(String(32), primary_key=True, default=new_id)
    chat_id = Column(String(65), index=True)
    sender_id = Column(String(32), ForeignKey("users.id"))
    receiver_id = Column(String(32), ForeignKey("users.id"))
    sender_name = Column(String(100))
    text = Column(Text)
    created_at = Column(DateTime)
