import datetime
from dataclasses import asdict

from fastapi import APIRouter, Header
from pydantic import BaseModel
from ..services import friends as friend_service
from ..services.auth import require_auth

router = APIRouter()


class FriendRequestCreate(BaseModel):
    to_user_id: str


class FriendMatchCreate(BaseModel):
    winner_id: str
    date: datetime.date | None = None


@router.get("/friends")
def list_friends_api(authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return [asdict(f) for f in friend_service.list_friends(uid)]


@router.post("/friend_requests")
def send_friend_request_api(data: FriendRequestCreate, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    request = friend_service.send_friend_request(uid, data.to_user_id)
    return {"status": "ok", "request_id": request.id}


@router.get("/friend_requests/incoming")
def incoming_requests_api(authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return [asdict(r) for r in friend_service.list_incoming_requests(uid)]


@router.get("/friend_requests/sent")
def sent_requests_api(authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return [asdict(r) for r in friend_service.list_sent_requests(uid)]


@router.post("/friend_requests/{request_id}/accept")
def accept_request_api(request_id: str, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    created = friend_service.accept_friend_request(request_id, uid)
    return {"status": "ok", "created_edges": len(created)}


@router.post("/friend_requests/{request_id}/reject")
def reject_request_api(request_id: str, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    friend_service.reject_friend_request(request_id, uid)
    return {"status": "ok"}


@router.delete("/friend_requests/{request_id}")
def cancel_request_api(request_id: str, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    friend_service.cancel_friend_request(request_id, uid)
    return {"status": "ok"}


@router.get("/friends/{friend_id}/matches")
def list_friend_matches_api(friend_id: str, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return [asdict(m) for m in friend_service.list_friend_matches(uid, friend_id)]


@router.post("/friends/{friend_id}/matches")
def record_friend_match_api(
    friend_id: str, data: FriendMatchCreate, authorization: str | None = Header(None)
):
    uid = require_auth(authorization)
    match = friend_service.record_friend_match(
        uid, friend_id, data.winner_id, data.date or datetime.date.today()
    )
    return {"status": "ok", "match_id": match.id}


@router.delete("/matches/{match_id}")
def delete_friend_match_api(match_id: str, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    friend_service.delete_friend_match(match_id, uid)
    return {"status": "ok"}


@router.get("/friends/{friend_id}/stats")
def friend_stats_api(
    friend_id: str, include_groups: bool = False, authorization: str | None = Header(None)
):
    uid = require_auth(authorization)
    stats = friend_service.friend_stats(uid, friend_id, include_groups=include_groups)
    return {period: asdict(s) for period, s in stats.items()}
