"""Emergency alert triage, hospital matching and dispatch.

An alert moves ``active -> responded -> resolved``, or to ``cancelled`` from
either non-terminal state. Hospitals are matched by great-circle distance
from the alert location; the closest ones are written onto the alert and
each receives a pending notification.
"""

import logging
import time
from math import ceil
from typing import List, Optional

from sqlalchemy.orm import Session
from twilio.base.exceptions import TwilioException

from carelink import config, models, schemas
from carelink.crud import InvalidTransition, NotFound, list_hospitals, utcnow, watch
from carelink.utils.alerts import send_sms
from carelink.utils.events import bus
from carelink.utils.geo import AVERAGE_RESPONSE_SPEED_KMH, address_from_coordinates, distance_km, response_time

logger = logging.getLogger(__name__)

TOPIC = "emergency_alerts"

TRANSITIONS = {
    "active": {"responded", "resolved", "cancelled"},
    "responded": {"responded", "resolved", "cancelled"},
    "resolved": set(),
    "cancelled": set(),
}

DOCTOR_FEED_STATUSES = ("active",)
HOSPITAL_FEED_STATUSES = ("active", "responded")


def determine_severity(emergency_type: str, details: Optional[schemas.EmergencyDetails] = None) -> dict:
    # Only three types carry their own tier; everything else is medium.
    if emergency_type == "cardiac":
        level = "critical"
        affected_area = "Current location"
    elif emergency_type in ("trauma", "respiratory"):
        level = "high"
        affected_area = "Current location"
    else:
        level = "medium"
        affected_area = (details.affected_area if details else None) or "Unknown"

    return {
        "level": level,
        "estimated_casualties": 1,
        "affected_area": affected_area,
    }


def create_emergency_alert(db: Session, patient_id: str, patient_name: str, patient_phone: Optional[str],
                           emergency_type: str, severity: dict, latitude: float, longitude: float,
                           address: str, description: str) -> models.EmergencyAlert:
    now = utcnow()
    alert = models.EmergencyAlert(
        patient_id=patient_id,
        patient_name=patient_name,
        patient_phone=patient_phone,
        type=emergency_type,
        severity=severity,
        latitude=latitude,
        longitude=longitude,
        address=address,
        description=description,
        status="active",
        responding_hospitals=[],
        ambulance_dispatched=False,
        created_at=now,
        updated_at=now,
    )
    db.add(alert)
    db.commit()
    db.refresh(alert)
    logger.info(f"Emergency alert {alert.id} created: {emergency_type} ({severity['level']}) at {address}")
    bus.publish(TOPIC, alert.id)
    return alert


def get_emergency_alert(db: Session, alert_id: str) -> Optional[models.EmergencyAlert]:
    return db.query(models.EmergencyAlert).filter(models.EmergencyAlert.id == alert_id).first()


def _require_alert(db: Session, alert_id: str) -> models.EmergencyAlert:
    alert = get_emergency_alert(db, alert_id)
    if not alert:
        raise NotFound(f"Emergency alert {alert_id} not found")
    return alert


def update_emergency_status(db: Session, alert_id: str, status: str,
                            resolution_notes: Optional[str] = None) -> models.EmergencyAlert:
    alert = _require_alert(db, alert_id)
    if status not in TRANSITIONS.get(alert.status, set()):
        raise InvalidTransition(f"Cannot move alert {alert_id} from {alert.status} to {status}")

    alert.status = status
    alert.updated_at = utcnow()
    if resolution_notes is not None:
        alert.resolution_notes = resolution_notes
    db.commit()
    db.refresh(alert)
    bus.publish(TOPIC, alert.id)
    return alert


def end_emergency(db: Session, alert_id: str, resolution_notes: Optional[str] = None):
    return update_emergency_status(db, alert_id, "resolved", resolution_notes)


def cancel_emergency(db: Session, alert_id: str):
    return update_emergency_status(db, alert_id, "cancelled")


def update_emergency_with_nic_notification(db: Session, alert_id: str, status: str,
                                           hospital_id: str, hospital_name: str):
    alert = update_emergency_status(db, alert_id, status)
    logger.info(f"[NIC Integration] Hospital {hospital_name} ({hospital_id}) - Status: {status}")
    return alert


def start_video_stream(db: Session, alert_id: str) -> str:
    alert = _require_alert(db, alert_id)
    stream_url = f"stream://emergency/{alert_id}/{int(time.time() * 1000)}"
    alert.video_stream_url = stream_url
    alert.updated_at = utcnow()
    db.commit()
    bus.publish(TOPIC, alert_id)
    return stream_url


def _hospital_coordinates(hospital: models.User):
    data = hospital.hospital_data or {}
    coords = data.get("coordinates") or {}
    lat = coords.get("latitude")
    lon = coords.get("longitude")
    if lat is None or lon is None:
        lat, lon = hospital.lat, hospital.lon
    if lat is None or lon is None:
        return None
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        logger.warning(f"Hospital {hospital.id} has out-of-range coordinates ({lat}, {lon}); skipping")
        return None
    return lat, lon


def find_nearby_hospitals(db: Session, latitude: float, longitude: float,
                          max_distance: float = 10) -> List[schemas.HospitalResponse]:
    hospitals = list_hospitals(db)
    center = (latitude, longitude)
    matches = []
    for h in hospitals:
        coords = _hospital_coordinates(h)
        if coords is None:
            continue
        d = distance_km(center, coords)
        if d > max_distance:
            continue

        data = h.hospital_data or {}
        available_beds = data.get("available_beds") or 0
        ambulances = data.get("ambulances_available")
        matches.append(schemas.HospitalResponse(
            hospital_id=h.id,
            hospital_name=data.get("hospital_name") or h.full_name or "Unknown Hospital",
            distance=d,
            available_beds=available_beds,
            icu_beds=data.get("icu_beds") or 0,
            ambulances_available=1 if ambulances is None else ambulances,
            response_time=response_time(d),
            can_respond=available_beds > 0,
            coordinates=schemas.Coordinates(latitude=coords[0], longitude=coords[1]),
        ))

    matches.sort(key=lambda m: m.distance)
    return matches


def notify_nearby_hospitals(db: Session, alert_id: str, hospitals: List[schemas.HospitalResponse],
                            limit: int = None) -> List[models.Notification]:
    limit = config.DISPATCH_LIMIT if limit is None else limit
    alert = _require_alert(db, alert_id)
    if alert.status not in HOSPITAL_FEED_STATUSES:
        raise InvalidTransition(f"Alert {alert_id} is {alert.status}; hospitals can no longer be dispatched")

    selected = hospitals[:limit]
    already_notified = {
        n.hospital_id for n in db.query(models.Notification)
        .filter(models.Notification.emergency_alert_id == alert_id).all()
    }

    now = utcnow()
    responding = list(alert.responding_hospitals or [])
    created = []
    for h in selected:
        if h.hospital_id not in responding:
            responding.append(h.hospital_id)
        if h.hospital_id in already_notified:
            continue
        notification = models.Notification(
            type="emergency_alert",
            hospital_id=h.hospital_id,
            emergency_alert_id=alert_id,
            status="pending",
            created_at=now,
        )
        db.add(notification)
        created.append(notification)

    alert.responding_hospitals = responding
    if selected and alert.estimated_arrival_time is None:
        alert.estimated_arrival_time = ceil(selected[0].distance / AVERAGE_RESPONSE_SPEED_KMH)
    alert.updated_at = now
    db.commit()
    bus.publish(TOPIC, alert_id)
    bus.publish("notifications", alert_id)

    _text_hospitals(db, alert, [h for h in selected if h.hospital_id not in already_notified])
    return created


def _text_hospitals(db: Session, alert: models.EmergencyAlert, hospitals: List[schemas.HospitalResponse]):
    level = (alert.severity or {}).get("level", "medium")
    for h in hospitals:
        hospital = db.query(models.User).filter(models.User.id == h.hospital_id).first()
        if not hospital or not hospital.phone:
            continue
        msg = (f"🚨 EMERGENCY ALERT: {alert.type} ({level}) at {alert.address}. "
               f"{h.distance:.1f} km away, patient {alert.patient_name} {alert.patient_phone or ''}".rstrip())
        try:
            send_sms(hospital.phone, msg)
        except TwilioException as e:
            logger.error(f"Failed to text hospital {h.hospital_id} for alert {alert.id}: {e}")


def trigger_emergency_alert(db: Session, patient: models.User, details: schemas.EmergencyDetails,
                            latitude: float, longitude: float, radius_km: float = None) -> models.EmergencyAlert:
    radius_km = config.EMERGENCY_RADIUS_KM if radius_km is None else radius_km
    address = address_from_coordinates(latitude, longitude)
    severity = determine_severity(details.type, details)

    alert = create_emergency_alert(
        db,
        patient.id,
        patient.full_name,
        patient.phone,
        details.type,
        severity,
        latitude,
        longitude,
        address,
        details.description,
    )

    nearby = find_nearby_hospitals(db, latitude, longitude, radius_km)
    if nearby:
        notify_nearby_hospitals(db, alert.id, nearby)
        db.refresh(alert)
    else:
        logger.warning(f"No hospitals within {radius_km} km of alert {alert.id}")
    return alert


def get_emergency_response_summary(db: Session, alert_id: str) -> Optional[dict]:
    alert = get_emergency_alert(db, alert_id)
    if not alert:
        return None
    return {
        "emergency_id": alert.id,
        "type": alert.type,
        "severity": alert.severity,
        "patient_info": {"name": alert.patient_name, "phone": alert.patient_phone},
        "location": {
            "address": alert.address,
            "latitude": alert.latitude,
            "longitude": alert.longitude,
        },
        "description": alert.description,
        "status": alert.status,
        "video_stream_url": alert.video_stream_url,
        "responding_hospitals": alert.responding_hospitals or [],
        "created_at": alert.created_at,
        "estimated_arrival_time": alert.estimated_arrival_time,
    }


def get_emergency_history(db: Session, patient_id: str) -> List[models.EmergencyAlert]:
    return (
        db.query(models.EmergencyAlert)
        .filter(models.EmergencyAlert.patient_id == patient_id)
        .order_by(models.EmergencyAlert.created_at.desc())
        .all()
    )


def check_emergency_services_availability(db: Session, latitude: float, longitude: float) -> dict:
    hospitals = find_nearby_hospitals(db, latitude, longitude, 20)
    return {
        "emergency_services_available": len(hospitals) > 0,
        "nearest_service": hospitals[0] if hospitals else None,
        "services_within_20km": len(hospitals),
        "avg_response_time": hospitals[0].response_time if hospitals else "N/A",
        "emergency_phone": config.EMERGENCY_PHONE,
    }


def list_alerts(db: Session, statuses) -> List[models.EmergencyAlert]:
    return (
        db.query(models.EmergencyAlert)
        .filter(models.EmergencyAlert.status.in_(list(statuses)))
        .order_by(models.EmergencyAlert.created_at.desc())
        .all()
    )


def subscribe_to_doctor_alerts(callback, session_factory=None):
    return watch(TOPIC, lambda db: list_alerts(db, DOCTOR_FEED_STATUSES), callback, session_factory)


def subscribe_to_hospital_alerts(callback, session_factory=None):
    return watch(TOPIC, lambda db: list_alerts(db, HOSPITAL_FEED_STATUSES), callback, session_factory)


def list_hospital_notifications(db: Session, hospital_id: str, status: str = "pending") -> List[models.Notification]:
    return (
        db.query(models.Notification)
        .filter(models.Notification.hospital_id == hospital_id, models.Notification.status == status)
        .order_by(models.Notification.created_at.desc())
        .all()
    )


def subscribe_to_hospital_notifications(hospital_id: str, callback, session_factory=None):
    return watch("notifications", lambda db: list_hospital_notifications(db, hospital_id), callback, session_factory)
