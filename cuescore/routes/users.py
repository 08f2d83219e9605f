from fastapi import APIRouter, Header
from pydantic import BaseModel
from ..services import users as user_service
from ..services.auth import require_auth, logout
from ..services.helpers import get_user_or_404

router = APIRouter()


class UserCreate(BaseModel):
    display_name: str
    email: str | None = None


class LoginRequest(BaseModel):
    user_id: str
    secret: str


def _public(user) -> dict:
    return {
        "user_id": user.user_id,
        "display_name": user.display_name,
        "created_at": user.created_at,
    }


@router.post("/users")
def register_user_api(data: UserCreate):
    user, token, secret = user_service.register_user(data.display_name, data.email)
    return {
        "status": "ok",
        "user_id": user.user_id,
        "display_name": user.display_name,
        "token": token,
        "secret": secret,
    }


@router.post("/login")
def login_api(data: LoginRequest):
    token = user_service.sign_in(data.user_id, data.secret)
    return {"status": "ok", "user_id": data.user_id, "token": token}


@router.post("/logout")
def logout_api(authorization: str | None = Header(None)):
    require_auth(authorization)
    logout(authorization)
    return {"status": "ok"}


@router.get("/users/search")
def search_users_api(q: str = "", authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return [_public(u) for u in user_service.search_users(q, exclude=uid)]


@router.get("/users/me")
def get_me_api(authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    user = get_user_or_404(uid)
    return {**_public(user), "email": user.email}


@router.get("/users/{user_id}")
def get_user_api(user_id: str, authorization: str | None = Header(None)):
    require_auth(authorization)
    return _public(get_user_or_404(user_id))


@router.get("/usernames/{name}/available")
def username_available_api(name: str):
    user_service.validate_username(name)
    return {"available": user_service.check_username_available(name)}
