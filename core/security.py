from datetime import timedelta

from jose import jwt

from core.clock import utcnow
from core.config import settings


def create_access_token(user_id: int):
    expire = utcnow() + timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    payload = {"sub": str(user_id), "exp": expire}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
