import os
from pathlib import Path
from dotenv import load_dotenv
from fastapi import Header, HTTPException
from jose import JWTError, jwt

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

STAFF_ROLES = {"laundromat_staff", "admin"}


def verify_token(authorization: str = Header(...)) -> dict:
    """Decode the bearer token and return its claims."""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Invalid or missing token")
    try:
        return jwt.decode(token, os.getenv("JWT_SECRET"), algorithms=["HS256"])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or missing token")


def require_staff(claims: dict) -> dict:
    if claims.get("role") not in STAFF_ROLES:
        raise HTTPException(status_code=403, detail="Staff access required")
    return claims


def current_user_id(claims: dict) -> str:
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or missing token")
    return user_id


def require_customer(claims: dict, customer_id: str) -> dict:
    """Customers act only for themselves; staff may act for anyone."""
    if claims.get("role") in STAFF_ROLES:
        return claims
    if current_user_id(claims) != customer_id:
        raise HTTPException(status_code=403, detail="Cannot act for another customer")
    return claims


def require_admin(claims: dict) -> dict:
    if claims.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return claims
