from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List, Literal, get_args
from datetime import datetime


Role = Literal["patient", "doctor", "hospital", "admin"]

EmergencyType = Literal[
    "cardiac", "accident", "trauma", "respiratory", "stroke", "allergic",
    "poisoning", "seizure", "unconscious", "burn", "choking", "chest_pain",
    "abdominal", "fracture", "spinal", "drowning", "electrocution",
    "severe_headache", "eye_injury", "pregnancy", "mental_crisis",
    "infection", "gunshot", "general",
]
EMERGENCY_TYPES = get_args(EmergencyType)

EmergencyStatus = Literal["active", "responded", "resolved", "cancelled"]
SeverityLevel = Literal["low", "medium", "high", "critical"]
Urgency = Literal["normal", "urgent", "emergency"]


class UserCreate(BaseModel):
    full_name: str
    email: EmailStr
    phone: Optional[str] = None
    role: Role = "patient"
    password: str = Field(..., min_length=6)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lon: Optional[float] = Field(None, ge=-180, le=180)


class UserOut(BaseModel):
    id: str
    full_name: str
    email: str
    phone: Optional[str] = None
    role: str

    class Config:
        from_attributes = True


class LoginSchema(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class Coordinates(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class HospitalProfile(BaseModel):
    hospital_name: Optional[str] = None
    available_beds: int = Field(0, ge=0)
    icu_beds: int = Field(0, ge=0)
    ambulances_available: int = Field(1, ge=0)
    coordinates: Optional[Coordinates] = None


# Emergency dispatch

class Severity(BaseModel):
    level: SeverityLevel
    estimated_casualties: Optional[int] = None
    affected_area: Optional[str] = None


class EmergencyDetails(BaseModel):
    type: EmergencyType
    description: str = ""
    estimated_casualties: Optional[int] = None
    affected_area: Optional[str] = None


class EmergencyTrigger(EmergencyDetails):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class EmergencyAlertOut(BaseModel):
    id: str
    patient_id: str
    patient_name: str
    patient_phone: Optional[str] = None
    type: str
    severity: Severity
    latitude: float
    longitude: float
    address: str
    description: str
    status: EmergencyStatus
    responding_hospitals: List[str] = []
    ambulance_dispatched: bool = False
    video_stream_url: Optional[str] = None
    estimated_arrival_time: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class HospitalResponse(BaseModel):
    hospital_id: str
    hospital_name: str
    distance: float
    available_beds: int
    icu_beds: int
    ambulances_available: int
    response_time: str
    can_respond: bool
    coordinates: Coordinates


class ServicesAvailability(BaseModel):
    emergency_services_available: bool
    nearest_service: Optional[HospitalResponse] = None
    services_within_20km: int
    avg_response_time: str
    emergency_phone: str


class EmergencyStatusUpdate(BaseModel):
    status: Literal["responded", "resolved", "cancelled"]


class ResolvePayload(BaseModel):
    resolution_notes: str = ""


# Calls

class CallCreate(BaseModel):
    patient_id: str
    doctor_id: str
    patient_name: str
    doctor_name: str
    appointment_id: Optional[str] = None
    call_type: Literal["video", "audio"] = "video"


class CallOut(BaseModel):
    id: str
    patient_id: str
    doctor_id: str
    patient_name: str
    doctor_name: str
    appointment_id: Optional[str] = None
    status: str
    call_type: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None

    class Config:
        from_attributes = True


class CallSnapshot(BaseModel):
    active_calls: List[CallOut]
    incoming_call: Optional[CallOut] = None
    current_call: Optional[CallOut] = None


# Hospital queue

class QueueCreate(BaseModel):
    patient_id: str
    doctor_id: str
    patient_name: str
    doctor_name: str
    department: Optional[str] = None
    priority: Urgency = "normal"
    reason: Optional[str] = None
    appointment_id: Optional[str] = None
    call_id: Optional[str] = None


class QueueOut(BaseModel):
    id: str
    patient_id: str
    doctor_id: str
    patient_name: str
    doctor_name: str
    queue_number: int
    status: str
    department: str
    priority: str
    reason: Optional[str] = None
    estimated_wait_time: int
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class QueueStatusUpdate(BaseModel):
    status: Literal["waiting", "in-progress", "completed", "cancelled"]


# Beds

class BedCreate(BaseModel):
    bed_number: str
    ward: str
    department: str = "general"
    type: Literal["general", "icu"] = "general"
    status: Literal["available", "occupied", "maintenance"] = "available"


class BedOut(BaseModel):
    id: str
    bed_number: str
    ward: str
    department: str
    type: str
    status: str
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    admission_date: Optional[datetime] = None
    reserved_until: Optional[datetime] = None
    hospital_id: Optional[str] = None

    class Config:
        from_attributes = True


class BedStatusUpdate(BaseModel):
    status: Literal["available", "occupied", "maintenance", "reserved"]
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    admission_date: Optional[datetime] = None


class BedBookingCreate(BaseModel):
    patient_id: str
    doctor_id: str
    patient_name: str
    doctor_name: str
    bed_id: str
    ward: str
    department: str
    urgency: Urgency = "normal"
    reason: Optional[str] = None
    appointment_id: Optional[str] = None
    call_id: Optional[str] = None


class BedBookingOut(BaseModel):
    id: str
    patient_id: str
    doctor_id: str
    bed_id: str
    bed_number: str
    ward: str
    department: str
    urgency: str
    status: str
    requested_at: datetime
    approved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Appointments

class AppointmentCreate(BaseModel):
    doctor_id: str
    doctor_name: str
    date: datetime
    time: str
    reason: str = ""
    notes: Optional[str] = None


class AppointmentOut(BaseModel):
    id: str
    patient_id: str
    doctor_id: str
    patient_name: str
    doctor_name: str
    date: datetime
    time: str
    status: str
    reason: str
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AppointmentStatusUpdate(BaseModel):
    status: Literal["pending", "confirmed", "completed", "cancelled"]


# Prescriptions

class Medication(BaseModel):
    name: str
    dosage: str
    frequency: str
    duration: str
    instructions: Optional[str] = None


class PrescriptionCreate(BaseModel):
    patient_id: str
    patient_name: str
    medications: List[Medication]
    diagnosis: Optional[str] = None
    notes: Optional[str] = None
    call_id: Optional[str] = None
    appointment_id: Optional[str] = None


class PrescriptionOut(BaseModel):
    id: str
    patient_id: str
    doctor_id: str
    patient_name: str
    doctor_name: str
    medications: List[Medication]
    diagnosis: str
    notes: str
    created_at: datetime

    class Config:
        from_attributes = True


# Staff

StaffRole = Literal["nurse", "doctor", "technician", "admin", "receptionist", "pharmacist", "lab_technician", "other"]
StaffDepartment = Literal[
    "emergency", "icu", "surgery", "cardiology", "orthopedics", "pediatrics",
    "radiology", "laboratory", "pharmacy", "administration", "general",
]
STAFF_ROLES = get_args(StaffRole)
STAFF_DEPARTMENTS = get_args(StaffDepartment)


class StaffCreate(BaseModel):
    name: str
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    role: StaffRole = "other"
    department: StaffDepartment = "general"
    status: Literal["active", "inactive", "on_leave"] = "active"
    hire_date: Optional[datetime] = None


class StaffUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    role: Optional[StaffRole] = None
    department: Optional[StaffDepartment] = None
    status: Optional[Literal["active", "inactive", "on_leave"]] = None
    hire_date: Optional[datetime] = None


class StaffOut(BaseModel):
    id: str
    hospital_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: str
    department: str
    status: str
    hire_date: datetime
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# AI assistant and facility search

class AIQuery(BaseModel):
    query: str = Field(..., min_length=1)
    mode: Literal["doctor", "health-tips", "medicine", "symptoms"] = "medicine"


class MedicineSuggestion(BaseModel):
    name: str
    description: str
    usage: str


class AIResponse(BaseModel):
    response: str
    suggestions: Optional[List[MedicineSuggestion]] = None


class Facility(BaseModel):
    id: str
    name: str
    address: str
    lat: float
    lon: float
    type: Literal["pharmacy", "hospital", "clinic"]
    rating: Optional[float] = None
    is_open: Optional[bool] = None


class FacilityDetails(BaseModel):
    name: str
    formatted_address: Optional[str] = None
    formatted_phone_number: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    opening_hours: Optional[dict] = None


# Image analysis

class ImageAnalysisRequest(BaseModel):
    image: str = Field(..., min_length=1)


class RashAnalysis(BaseModel):
    condition: str
    severity: str
    description: str
    possible_causes: List[str] = []
    recommendations: List[str] = []
    urgency: str
    when_to_see_doctor: List[str] = []
    symptoms: List[str] = []


class RashAnalysisResult(BaseModel):
    analysis: RashAnalysis
    confidence: float


class LabelScanRequest(ImageAnalysisRequest):
    allergies: List[str] = []
    restrictions: Literal["none", "vegan", "vegetarian", "diabetic", "gluten-free", "keto"] = "none"
    conditions: List[str] = []


class AllergenCheck(BaseModel):
    allergen: str
    severity: str = "medium"
    found: bool = False


class NutritionScore(BaseModel):
    grade: str
    score: float
    reasons: List[str] = []


class MedicineInfo(BaseModel):
    name: str
    generic_name: str = ""
    uses: List[str] = []
    indications: List[str] = []
    side_effects: List[str] = []
    contraindications: List[str] = []
    dosage: str
    precautions: List[str] = []
    interactions: List[str] = []
    results: str = ""


class LabelScanResult(BaseModel):
    scan_type: str
    ingredients: List[str] = []
    allergens: List[AllergenCheck] = []
    nutrition_score: NutritionScore
    medicine_info: Optional[MedicineInfo] = None
    warnings: List[str] = []
    safe_alternatives: List[str] = []
    is_safe: bool
    extracted_text: str = ""


# Mood tracking

class MoodEntryCreate(BaseModel):
    score: int = Field(..., ge=0, le=100)
    tone: Literal["happy", "neutral", "sad", "flat"]
    energy: Literal["high", "medium", "low"]
    transcription: Optional[str] = None
    analysis: Optional[dict] = None


class MoodEntryOut(BaseModel):
    id: str
    user_id: str
    date: str
    score: int
    tone: str
    energy: str
    transcription: str = ""
    analysis: Optional[dict] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MoodAlert(BaseModel):
    show: bool
    message: str = ""
    consecutive_low_days: int = 0


class MoodEntryResult(BaseModel):
    entry: MoodEntryOut
    alert: MoodAlert


# Messages

class MessageCreate(BaseModel):
    receiver_id: str
    text: str = Field(..., min_length=1)


class MessageOut(BaseModel):
    id: str
    chat_id: str
    sender_id: str
    receiver_id: str
    sender_name: str
    text: str
    created_at: datetime

    class Config:
        from_attributes = True
