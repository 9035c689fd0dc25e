from typing import Any, Dict, List, Optional, Type

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database

from database import ADMINS, TEAMS, USERS, create_document, get_db, next_id, serialize
from logging_config import logger
from schemas import Admin, User
from security import (
    clear_token_cookie,
    create_access_token,
    get_current_claims,
    get_password_hash,
    set_token_cookie,
    verify_password,
)

router = APIRouter()


# -----------------------------
# Schemas (subset for requests)
# -----------------------------
class RegisterRequest(BaseModel):
    firstname: str = Field(..., min_length=1, max_length=50)
    lastname: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    contact: Optional[str] = ""


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


def team_roles(db: Database, user_id: str) -> List[str]:
    """TeamLeader/TeamMember, derived from current team membership."""
    roles = []
    if db[TEAMS].find_one({"teamLeader": user_id}, {"_id": 1}):
        roles.append("TeamLeader")
    if db[TEAMS].find_one({"members": user_id}, {"_id": 1}):
        roles.append("TeamMember")
    return roles


def _register(db: Database, collection: str, model: Type[BaseModel], prefix: str,
              body: RegisterRequest) -> Dict[str, Any]:
    email = body.email.lower()
    if db[collection].find_one({"email": email}):
        raise HTTPException(status_code=409, detail="Email is already registered.")
    doc = model(**{
        f"{prefix}Id": next_id(db, prefix),
        "firstname": body.firstname.strip(),
        "lastname": body.lastname.strip(),
        "email": email,
        "password": get_password_hash(body.password),
        "contact": body.contact or "",
    })
    return create_document(db, collection, doc)


# -----------------------------
# User accounts
# -----------------------------
@router.post("/api/userData/register_user", status_code=201)
async def register_user(body: RegisterRequest, db: Database = Depends(get_db)):
    user = _register(db, USERS, User, "User", body)
    logger.info(f"Registered user {user['UserId']}")
    return {"success": True, "message": "User registered successfully.", "user": serialize(user)}


@router.post("/api/userData/login_user")
async def login_user(body: LoginRequest, response: Response, db: Database = Depends(get_db)):
    user = db[USERS].find_one({"email": body.email.lower()})
    if not user or not verify_password(body.password, user.get("password", "")):
        raise HTTPException(status_code=401, detail="Invalid email or password.")

    claims = {
        "UserId": user["UserId"],
        "email": user["email"],
        "userType": user.get("userType", "User"),
        "userRoles": team_roles(db, user["UserId"]),
    }
    token = create_access_token(claims)
    set_token_cookie(response, token)
    logger.info(f"User {user['UserId']} logged in")
    return {"success": True, "message": "Login successful.", "token": token, "user": serialize(user)}


# -----------------------------
# Admin accounts
# -----------------------------
@router.post("/api/adminData/register_admin", status_code=201)
async def register_admin(body: RegisterRequest, db: Database = Depends(get_db)):
    admin = _register(db, ADMINS, Admin, "Admin", body)
    logger.info(f"Registered admin {admin['AdminId']}")
    return {"success": True, "message": "Admin registered successfully.", "admin": serialize(admin)}


@router.post("/api/adminData/login_admin")
async def login_admin(body: LoginRequest, response: Response, db: Database = Depends(get_db)):
    admin = db[ADMINS].find_one({"email": body.email.lower()})
    if not admin or not verify_password(body.password, admin.get("password", "")):
        raise HTTPException(status_code=401, detail="Invalid email or password.")

    token = create_access_token({"UserId": admin["AdminId"], "email": admin["email"], "userType": "Admin"})
    set_token_cookie(response, token)
    return {"success": True, "message": "Login successful.", "token": token, "admin": serialize(admin)}


# -----------------------------
# Session
# -----------------------------
@router.get("/api/auth/UserStatus")
async def user_status(claims: Dict[str, Any] = Depends(get_current_claims)):
    user = {k: v for k, v in claims.items() if k not in ("exp", "type")}
    return {"success": True, "user": user}


@router.post("/api/auth/logout")
async def logout(response: Response):
    clear_token_cookie(response)
    return {"success": True, "message": "Logged out."}
