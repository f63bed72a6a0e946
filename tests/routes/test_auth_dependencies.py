from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from clinic_api.auth import dependencies, jwt_handler
from clinic_api.core import config
from clinic_api.models.user import ROLE_DOCTOR, ROLE_PATIENT


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_access_token_round_trip() -> None:
    token = jwt_handler.create_access_token(12, ROLE_DOCTOR)

    payload = jwt_handler.decode_access_token(token)

    assert payload['sub'] == '12'
    assert payload['role'] == ROLE_DOCTOR


def test_get_current_user_resolves_token(db, doctor) -> None:
    token = jwt_handler.create_access_token(doctor.id, doctor.role)

    assert dependencies.get_current_user(credentials=_credentials(token), db=db).id == doctor.id


def test_expired_token_is_rejected(db, doctor) -> None:
    expired = jwt.encode(
        {'sub': str(doctor.id), 'role': doctor.role, 'exp': datetime.now(timezone.utc) - timedelta(minutes=5)},
        config.JWT_SECRET_KEY,
        algorithm=config.JWT_ALGORITHM,
    )

    with pytest.raises(HTTPException) as exception_info:
        dependencies.get_current_user(credentials=_credentials(expired), db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Token expired'


@pytest.mark.parametrize('token', ['not-a-jwt', jwt.encode({'sub': '1'}, 'some-other-secret-of-enough-length', algorithm='HS256')])
def test_invalid_token_is_rejected(db, token: str) -> None:
    with pytest.raises(HTTPException) as exception_info:
        dependencies.get_current_user(credentials=_credentials(token), db=db)

    assert exception_info.value.status_code == 401


def test_unknown_user_and_role_mismatch_are_rejected(db, doctor) -> None:
    with pytest.raises(HTTPException) as exception_info:
        dependencies.get_current_user(credentials=_credentials(jwt_handler.create_access_token(999, ROLE_DOCTOR)), db=db)
    assert exception_info.value.detail == 'User not found'

    with pytest.raises(HTTPException) as exception_info:
        dependencies.get_current_user(credentials=_credentials(jwt_handler.create_access_token(doctor.id, ROLE_PATIENT)), db=db)
    assert exception_info.value.detail == 'Token role does not match user'


def test_require_role_blocks_other_roles(doctor, patient) -> None:
    assert dependencies.require_doctor(current_user=doctor) is doctor

    with pytest.raises(HTTPException) as exception_info:
        dependencies.require_doctor(current_user=patient)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Only doctors can access this resource.'
