from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

import jwt

from clinic_api.auth import jwt_handler
from clinic_api.database import get_db
from clinic_api.models.user import ROLE_ADMIN, ROLE_DOCTOR, ROLE_PATIENT, User

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(status_code=401, detail="Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.query(User).filter(User.id == int(subject)).first()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if payload.get("role") != user.role:
        raise HTTPException(status_code=401, detail="Token role does not match user")
    return user


def require_role(role: str):
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role != role:
            raise HTTPException(status_code=403, detail=f"Only {role}s can access this resource.")
        return current_user

    return dependency


require_admin = require_role(ROLE_ADMIN)
require_doctor = require_role(ROLE_DOCTOR)
require_patient = require_role(ROLE_PATIENT)
