from passlib.context import CryptContext
import jwt
from datetime import datetime, timedelta
from carelink import config

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ROLES = ("patient", "doctor", "hospital", "admin")

# action -> roles allowed to perform it
CAPABILITIES = {
    "emergency:trigger": {"patient"},
    "emergency:cancel": {"patient", "admin"},
    "emergency:respond": {"hospital", "doctor", "admin"},
    "emergency:resolve": {"hospital", "doctor", "admin"},
    "emergency:view_feed": {"hospital", "doctor", "admin"},
    "emergency:video": {"patient", "hospital", "doctor"},
    "hospital:edit_profile": {"hospital"},
    "call:initiate": {"patient", "doctor"},
    "call:respond": {"patient", "doctor"},
    "queue:join": {"patient", "doctor", "hospital"},
    "queue:manage": {"doctor", "hospital", "admin"},
    "bed:manage": {"hospital", "admin"},
    "bed:book": {"patient", "doctor"},
    "appointment:book": {"patient"},
    "appointment:manage": {"doctor", "hospital", "admin"},
    "prescription:write": {"doctor"},
    "staff:manage": {"hospital", "admin"},
    "mood:track": {"patient"},
    "message:send": {"patient", "doctor"},
}

def can(role: str, action: str) -> bool:
    return role in CAPABILITIES.get(action, set())

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)

def create_access_token(user_id: str, role: str) -> str:
    payload = {
        "sub": user_id,
        "role": role,
        "exp": datetime.utcnow() + timedelta(minutes=config.JWT_EXP_MINUTES)
    }
    token = jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
    return token

def decode_token(token: str):
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
        return payload
    except jwt.PyJWTError:
        return None
