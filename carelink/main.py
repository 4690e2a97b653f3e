from fastapi import FastAPI, Depends, HTTPException, Header, File, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import List, Literal, Optional
import logging
import requests

from carelink.database import engine, get_db, Base
from carelink import models, schemas, crud, emergency
from carelink.crud import InvalidTransition, NotFound
from carelink.utils import ai, places, uploads, vision
import carelink.auth.utils_auth as auth_utils

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="CareLink Emergency & Telehealth API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFound)
def not_found_handler(request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})

@app.exception_handler(InvalidTransition)
def invalid_transition_handler(request, exc: InvalidTransition):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def get_current_user(authorization: Optional[str] = Header(None), db: Session = Depends(get_db)) -> models.User:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid Authorization header format")
    payload = auth_utils.decode_token(authorization[len("Bearer "):])
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = crud.get_user(db, payload["sub"])
    if not user:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user

def require(action: str):
    def dependency(user: models.User = Depends(get_current_user)) -> models.User:
        if not auth_utils.can(user.role, action):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user
    return dependency

def _owner_role(user: models.User) -> str:
    if user.role not in ("patient", "doctor"):
        raise HTTPException(status_code=400, detail="Only patients and doctors have personal listings")
    return user.role


@app.get("/")
def root():
    return {"message": "CareLink Emergency & Telehealth API"}


# ============ USERS ============
@app.post("/users/signup", response_model=schemas.UserOut)
def signup(user: schemas.UserCreate, db: Session = Depends(get_db)):
    try:
        return crud.create_user(db, user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/users/login", response_model=schemas.Token)
def user_login(payload: schemas.LoginSchema, db: Session = Depends(get_db)):
    user = crud.authenticate_user(db, payload.email, payload.password)
    if not user:
        raise HTTPException(status_code=400, detail="Invalid credentials")
    token = auth_utils.create_access_token(user.id, user.role)
    return {"access_token": token, "user": user}

@app.get("/users/me", response_model=schemas.UserOut)
def me(user: models.User = Depends(get_current_user)):
    return user

@app.put("/hospitals/me/profile", response_model=schemas.HospitalProfile)
def update_hospital_profile(profile: schemas.HospitalProfile, user=Depends(require("hospital:edit_profile")),
                            db: Session = Depends(get_db)):
    hospital = crud.update_hospital_profile(db, user, profile)
    return hospital.hospital_data


# ============ EMERGENCY ============
@app.post("/emergency/alerts", response_model=schemas.EmergencyAlertOut)
def trigger_alert(payload: schemas.EmergencyTrigger, user=Depends(require("emergency:trigger")),
                  db: Session = Depends(get_db)):
    return emergency.trigger_emergency_alert(db, user, payload, payload.latitude, payload.longitude)

@app.get("/emergency/alerts", response_model=List[schemas.EmergencyAlertOut])
def alert_feed(scope: Literal["doctor", "hospital"] = "hospital", user=Depends(require("emergency:view_feed")),
               db: Session = Depends(get_db)):
    statuses = emergency.DOCTOR_FEED_STATUSES if scope == "doctor" else emergency.HOSPITAL_FEED_STATUSES
    return emergency.list_alerts(db, statuses)

@app.get("/emergency/history", response_model=List[schemas.EmergencyAlertOut])
def alert_history(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return emergency.get_emergency_history(db, user.id)

@app.get("/emergency/nearby-hospitals", response_model=List[schemas.HospitalResponse])
def nearby_hospitals(lat: float, lon: float, radius_km: float = 10.0,
                     user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return emergency.find_nearby_hospitals(db, lat, lon, radius_km)

@app.get("/emergency/availability", response_model=schemas.ServicesAvailability)
def services_availability(lat: float, lon: float, user: models.User = Depends(get_current_user),
                          db: Session = Depends(get_db)):
    return emergency.check_emergency_services_availability(db, lat, lon)

@app.get("/emergency/alerts/{alert_id}", response_model=schemas.EmergencyAlertOut)
def get_alert(alert_id: str, user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    alert = emergency.get_emergency_alert(db, alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Emergency alert not found")
    return alert

@app.get("/emergency/alerts/{alert_id}/summary")
def alert_summary(alert_id: str, user=Depends(require("emergency:view_feed")), db: Session = Depends(get_db)):
    summary = emergency.get_emergency_response_summary(db, alert_id)
    if not summary:
        raise HTTPException(status_code=404, detail="Emergency alert not found")
    return summary

@app.post("/emergency/alerts/{alert_id}/status", response_model=schemas.EmergencyAlertOut)
def update_alert_status(alert_id: str, payload: schemas.EmergencyStatusUpdate,
                        user=Depends(require("emergency:respond")), db: Session = Depends(get_db)):
    if user.role == "hospital":
        name = (user.hospital_data or {}).get("hospital_name") or user.full_name
        return emergency.update_emergency_with_nic_notification(db, alert_id, payload.status, user.id, name)
    return emergency.update_emergency_status(db, alert_id, payload.status)

@app.post("/emergency/alerts/{alert_id}/cancel", response_model=schemas.EmergencyAlertOut)
def cancel_alert(alert_id: str, user=Depends(require("emergency:cancel")), db: Session = Depends(get_db)):
    alert = emergency.get_emergency_alert(db, alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Emergency alert not found")
    if user.role == "patient" and alert.patient_id != user.id:
        raise HTTPException(status_code=403, detail="You can only cancel your own alerts")
    return emergency.cancel_emergency(db, alert_id)

@app.post("/emergency/alerts/{alert_id}/resolve", response_model=schemas.EmergencyAlertOut)
def resolve_alert(alert_id: str, payload: schemas.ResolvePayload, user=Depends(require("emergency:resolve")),
                  db: Session = Depends(get_db)):
    return emergency.end_emergency(db, alert_id, payload.resolution_notes)

@app.post("/emergency/alerts/{alert_id}/video")
def start_video(alert_id: str, user=Depends(require("emergency:video")), db: Session = Depends(get_db)):
    alert = emergency.get_emergency_alert(db, alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Emergency alert not found")
    if user.role == "patient" and alert.patient_id != user.id:
        raise HTTPException(status_code=403, detail="You can only stream video for your own alerts")
    return {"video_stream_url": emergency.start_video_stream(db, alert_id)}


# ============ CALLS ============
@app.post("/calls")
def initiate_call(call: schemas.CallCreate, user=Depends(require("call:initiate")), db: Session = Depends(get_db)):
    if user.id not in (call.patient_id, call.doctor_id):
        raise HTTPException(status_code=403, detail="You can only start calls you take part in")
    return {"id": crud.initiate_call(db, call)}

def _participant_call(db: Session, call_id: str, user: models.User) -> models.Call:
    call = db.query(models.Call).filter(models.Call.id == call_id).first()
    if not call:
        raise HTTPException(status_code=404, detail="Call not found")
    if user.id not in (call.patient_id, call.doctor_id):
        raise HTTPException(status_code=403, detail="Not a participant of this call")
    return call

@app.post("/calls/{call_id}/answer", response_model=schemas.CallOut)
def answer_call(call_id: str, user=Depends(require("call:respond")), db: Session = Depends(get_db)):
    _participant_call(db, call_id, user)
    return crud.answer_call(db, call_id)

@app.post("/calls/{call_id}/decline", response_model=schemas.CallOut)
def decline_call(call_id: str, user=Depends(require("call:respond")), db: Session = Depends(get_db)):
    _participant_call(db, call_id, user)
    return crud.decline_call(db, call_id)

@app.post("/calls/{call_id}/end", response_model=schemas.CallOut)
def end_call(call_id: str, user=Depends(require("call:respond")), db: Session = Depends(get_db)):
    _participant_call(db, call_id, user)
    return crud.end_call(db, call_id)

@app.get("/calls/active", response_model=schemas.CallSnapshot)
def active_calls(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return crud.call_snapshot(crud.list_active_calls(db, user.id, _owner_role(user)))


# ============ HOSPITAL QUEUE ============
@app.post("/queue", response_model=schemas.QueueOut)
def join_queue(entry: schemas.QueueCreate, user=Depends(require("queue:join")), db: Session = Depends(get_db)):
    return crud.add_to_queue(db, entry)

@app.get("/queue", response_model=List[schemas.QueueOut])
def get_queue(department: Optional[str] = None, user: models.User = Depends(get_current_user),
              db: Session = Depends(get_db)):
    return crud.list_queue(db, department)

@app.post("/queue/{queue_id}/status", response_model=schemas.QueueOut)
def update_queue_status(queue_id: str, payload: schemas.QueueStatusUpdate, user=Depends(require("queue:manage")),
                        db: Session = Depends(get_db)):
    return crud.update_queue_status(db, queue_id, payload.status)


# ============ BEDS ============
@app.post("/beds", response_model=schemas.BedOut)
def add_bed(bed: schemas.BedCreate, user=Depends(require("bed:manage")), db: Session = Depends(get_db)):
    hospital_id = user.id if user.role == "hospital" else None
    return crud.add_bed(db, bed, hospital_id)

@app.get("/beds", response_model=List[schemas.BedOut])
def list_beds(department: Optional[str] = None, hospital_id: Optional[str] = None,
              urgency: Optional[schemas.Urgency] = None, available_only: bool = False,
              user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    if available_only:
        return crud.check_bed_availability(db, department, urgency, hospital_id)
    return crud.list_beds(db, department, hospital_id)

@app.get("/beds/stats")
def bed_stats(hospital_id: Optional[str] = None, user: models.User = Depends(get_current_user),
              db: Session = Depends(get_db)):
    return crud.get_bed_stats(db, hospital_id)

@app.post("/beds/bookings", response_model=schemas.BedBookingOut)
def book_bed(booking: schemas.BedBookingCreate, user=Depends(require("bed:book")), db: Session = Depends(get_db)):
    try:
        return crud.book_bed(db, booking)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/beds/bookings", response_model=List[schemas.BedBookingOut])
def list_bookings(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return crud.list_bookings(db, user.id, _owner_role(user))

@app.post("/beds/{bed_id}/status", response_model=schemas.BedOut)
def update_bed_status(bed_id: str, payload: schemas.BedStatusUpdate, user=Depends(require("bed:manage")),
                      db: Session = Depends(get_db)):
    return crud.update_bed_status(db, bed_id, payload.status, payload.patient_id, payload.patient_name,
                                  payload.admission_date)


# ============ APPOINTMENTS ============
@app.post("/appointments", response_model=schemas.AppointmentOut)
def book_appointment(appt: schemas.AppointmentCreate, user=Depends(require("appointment:book")),
                     db: Session = Depends(get_db)):
    doctor = crud.get_user(db, appt.doctor_id)
    if not doctor or doctor.role != "doctor":
        raise HTTPException(status_code=404, detail="Doctor not found")
    return crud.create_appointment(db, user, appt)

@app.get("/appointments", response_model=List[schemas.AppointmentOut])
def list_appointments(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return crud.list_appointments(db, user.id, _owner_role(user))

@app.post("/appointments/{appointment_id}/status", response_model=schemas.AppointmentOut)
def update_appointment_status(appointment_id: str, payload: schemas.AppointmentStatusUpdate,
                              user=Depends(require("appointment:manage")), db: Session = Depends(get_db)):
    return crud.update_appointment_status(db, appointment_id, payload.status)


# ============ PRESCRIPTIONS ============
@app.post("/prescriptions", response_model=schemas.PrescriptionOut)
def create_prescription(rx: schemas.PrescriptionCreate, user=Depends(require("prescription:write")),
                        db: Session = Depends(get_db)):
    return crud.create_prescription(db, user, rx)

@app.get("/prescriptions", response_model=List[schemas.PrescriptionOut])
def list_prescriptions(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return crud.list_prescriptions(db, user.id, _owner_role(user))


# ============ STAFF ============
def _staff_hospital(user: models.User, hospital_id: Optional[str]) -> str:
    if user.role == "hospital":
        return user.id
    if not hospital_id:
        raise HTTPException(status_code=400, detail="hospital_id is required")
    return hospital_id

@app.post("/staff", response_model=schemas.StaffOut)
def add_staff(staff: schemas.StaffCreate, hospital_id: Optional[str] = None, user=Depends(require("staff:manage")),
              db: Session = Depends(get_db)):
    return crud.add_staff(db, _staff_hospital(user, hospital_id), staff)

@app.get("/staff", response_model=List[schemas.StaffOut])
def list_staff(hospital_id: Optional[str] = None, user=Depends(require("staff:manage")),
               db: Session = Depends(get_db)):
    return crud.list_staff(db, _staff_hospital(user, hospital_id))

@app.get("/staff/stats")
def staff_stats(hospital_id: Optional[str] = None, user=Depends(require("staff:manage")),
                db: Session = Depends(get_db)):
    return crud.get_staff_stats(db, _staff_hospital(user, hospital_id))

@app.patch("/staff/{staff_id}", response_model=schemas.StaffOut)
def update_staff(staff_id: str, updates: schemas.StaffUpdate, user=Depends(require("staff:manage")),
                 db: Session = Depends(get_db)):
    return crud.update_staff(db, staff_id, updates)

@app.delete("/staff/{staff_id}")
def delete_staff(staff_id: str, user=Depends(require("staff:manage")), db: Session = Depends(get_db)):
    crud.delete_staff(db, staff_id)
    return {"msg": "Staff member removed"}


# ============ MOOD AND MESSAGES ============
@app.post("/mood", response_model=schemas.MoodEntryResult)
def add_mood(entry: schemas.MoodEntryCreate, user=Depends(require("mood:track")), db: Session = Depends(get_db)):
    db_entry = crud.add_mood_entry(db, user.id, entry)
    return {"entry": db_entry, "alert": crud.check_low_mood_alert(db, user.id)}

@app.get("/mood", response_model=List[schemas.MoodEntryOut])
def mood_history(days: int = 30, user=Depends(require("mood:track")), db: Session = Depends(get_db)):
    return crud.get_mood_history(db, user.id, days)

@app.get("/mood/alert", response_model=schemas.MoodAlert)
def mood_alert(user=Depends(require("mood:track")), db: Session = Depends(get_db)):
    return crud.check_low_mood_alert(db, user.id)

@app.post("/messages", response_model=schemas.MessageOut)
def send_message(message: schemas.MessageCreate, user=Depends(require("message:send")),
                 db: Session = Depends(get_db)):
    receiver = crud.get_user(db, message.receiver_id)
    if not receiver or receiver.role not in ("patient", "doctor") or receiver.role == user.role:
        raise HTTPException(status_code=404, detail="Recipient not found")
    try:
        return crud.send_message(db, user, receiver.id, message.text)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/messages/{other_id}", response_model=List[schemas.MessageOut])
def list_messages(other_id: str, user=Depends(require("message:send")), db: Session = Depends(get_db)):
    return crud.list_messages(db, crud.chat_id_for(user.id, other_id))


# ============ AI, FACILITIES, UPLOADS ============
@app.post("/ai/ask", response_model=schemas.AIResponse)
def ask_ai(payload: schemas.AIQuery, user: models.User = Depends(get_current_user)):
    try:
        return ai.get_medical_response(payload.query, payload.mode)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ai.AIServiceError as e:
        logger.error(f"AI request failed: {e}")
        raise HTTPException(status_code=502, detail="AI assistant is unavailable")

@app.post("/ai/analyze/rash", response_model=schemas.RashAnalysisResult)
def analyze_rash(payload: schemas.ImageAnalysisRequest, user: models.User = Depends(get_current_user)):
    try:
        return vision.analyze_rash_image(payload.image)
    except ai.AIServiceError as e:
        logger.error(f"Rash analysis failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

@app.post("/ai/analyze/label", response_model=schemas.LabelScanResult)
def analyze_label(payload: schemas.LabelScanRequest, user: models.User = Depends(get_current_user)):
    try:
        return vision.analyze_label_image(payload.image, payload.allergies, payload.restrictions, payload.conditions)
    except ai.AIServiceError as e:
        logger.error(f"Label scan failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

@app.get("/facilities/nearby", response_model=List[schemas.Facility])
def nearby_facilities(lat: float, lon: float, type: Optional[Literal["pharmacy", "hospital", "clinic"]] = None,
                      user: models.User = Depends(get_current_user)):
    try:
        return places.fetch_nearby_facilities(lat, lon, type)
    except (places.PlacesError, requests.exceptions.RequestException) as e:
        logger.error(f"Facility search failed: {e}")
        raise HTTPException(status_code=502, detail="Facility search is unavailable")

@app.get("/facilities/{place_id}", response_model=schemas.FacilityDetails)
def facility_details(place_id: str, user: models.User = Depends(get_current_user)):
    try:
        return places.get_facility_details(place_id)
    except (places.PlacesError, requests.exceptions.RequestException) as e:
        logger.error(f"Facility details lookup failed: {e}")
        raise HTTPException(status_code=502, detail="Facility details are unavailable")

@app.post("/uploads")
def upload(file: UploadFile = File(...), folder: str = "carelink", user: models.User = Depends(get_current_user)):
    try:
        return uploads.upload_image(file.file.read(), folder)
    except uploads.UploadError as e:
        raise HTTPException(status_code=502, detail=str(e))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
