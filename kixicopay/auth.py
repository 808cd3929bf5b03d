import os
from jose import jwt, JWTError
from datetime import datetime, timedelta, timezone
from fastapi import Depends, HTTPException, Request

from . import crud

# Prefer JWT_SECRET but support legacy JWT_SECRET_KEY for compatibility
SECRET = os.getenv('JWT_SECRET') or os.getenv('JWT_SECRET_KEY', 'devsecret')
ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
# backend-issued tokens carry aud=authenticated
AUDIENCE = os.getenv('JWT_AUDIENCE')
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv('ACCESS_TOKEN_EXPIRE_MINUTES', str(60 * 24 * 7)))

def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({'exp': expire})
    if AUDIENCE and 'aud' not in to_encode:
        to_encode['aud'] = AUDIENCE
    encoded = jwt.encode(to_encode, SECRET, algorithm=ALGORITHM)
    return encoded

def decode_token(token: str):
    try:
        if AUDIENCE:
            payload = jwt.decode(token, SECRET, algorithms=[ALGORITHM], audience=AUDIENCE)
        else:
            payload = jwt.decode(token, SECRET, algorithms=[ALGORITHM], options={'verify_aud': False})
    except JWTError:
        return None
    if not payload.get('sub'):
        return None
    return payload

def bearer_token(request: Request):
    auth = request.headers.get('Authorization')
    if not auth or not auth.lower().startswith('bearer '):
        return None
    return auth.split(' ', 1)[1].strip()

async def get_current_user(request: Request):
    token = bearer_token(request)
    payload = decode_token(token) if token else None
    if not payload:
        raise HTTPException(status_code=401, detail='Not authenticated')
    return {'id': payload['sub'], 'email': payload.get('email')}

async def require_admin(current_user: dict = Depends(get_current_user)):
    if not await crud.has_role(current_user['id'], 'admin'):
        raise HTTPException(status_code=403, detail='Forbidden')
    return current_user
