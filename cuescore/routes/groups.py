import datetime
from dataclasses import asdict

from fastapi import APIRouter, Header, Request
from pydantic import BaseModel
from ..services import groups as group_service
from ..services.auth import require_auth
from ..i18n import translate
from ..models import SORT_POINTS

router = APIRouter()


class GroupCreate(BaseModel):
    name: str


class MemberAdd(BaseModel):
    user_id: str


class GuestCreate(BaseModel):
    name: str


class GuestLink(BaseModel):
    user_id: str


class GroupMatchCreate(BaseModel):
    team_a: list[str]
    team_b: list[str]
    winning_team: str
    date: datetime.date | None = None


class PreferenceUpdate(BaseModel):
    preferred_view: str


@router.post("/groups")
def create_group_api(data: GroupCreate, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    group = group_service.create_group(uid, data.name)
    return {"status": "ok", "group_id": group.group_id}


@router.get("/groups")
def list_groups_api(authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return [
        {
            "group_id": g.group_id,
            "name": g.name,
            "created_by": g.created_by,
            "created_at": g.created_at,
            "member_count": len(g.member_ids),
        }
        for g in group_service.list_user_groups(uid)
    ]


@router.get("/groups/{group_id}")
def get_group_api(group_id: str, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    detail = group_service.get_group_detail(group_id, uid)
    return {
        **asdict(detail["group"]),
        "members": [asdict(m) for m in detail["members"]],
        "guests": [{**asdict(g), "player_id": g.player_id} for g in detail["guests"]],
        "matches": [asdict(m) for m in detail["matches"]],
    }


@router.delete("/groups/{group_id}")
def delete_group_api(group_id: str, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    removed = group_service.delete_group(group_id, uid)
    return {"status": "ok", "removed": removed}


@router.post("/groups/{group_id}/members")
def add_member_api(group_id: str, data: MemberAdd, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    group_service.add_group_member(group_id, uid, data.user_id)
    return {"status": "ok"}


@router.post("/groups/{group_id}/guests")
def create_guest_api(group_id: str, data: GuestCreate, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    guest = group_service.create_guest(group_id, uid, data.name)
    return {"status": "ok", "guest_id": guest.id, "player_id": guest.player_id}


@router.post("/groups/{group_id}/guests/{guest_id}/link")
def link_guest_api(
    group_id: str, guest_id: str, data: GuestLink, authorization: str | None = Header(None)
):
    uid = require_auth(authorization)
    rewritten = group_service.link_guest(group_id, uid, guest_id, data.user_id)
    return {"status": "ok", "matches_updated": rewritten}


@router.post("/groups/{group_id}/matches")
def record_match_api(
    group_id: str, data: GroupMatchCreate, authorization: str | None = Header(None)
):
    uid = require_auth(authorization)
    match = group_service.record_group_match(
        group_id,
        uid,
        data.team_a,
        data.team_b,
        data.winning_team,
        data.date or datetime.date.today(),
    )
    return {"status": "ok", "match_id": match.id, "points_awarded": match.points_awarded}


@router.delete("/groups/{group_id}/matches/{match_id}")
def delete_match_api(group_id: str, match_id: str, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    group_service.delete_group_match(group_id, match_id, uid)
    return {"status": "ok"}


@router.get("/groups/{group_id}/rankings")
def rankings_api(
    group_id: str,
    view: str | None = None,
    sort_by: str = SORT_POINTS,
    authorization: str | None = Header(None),
):
    uid = require_auth(authorization)
    view = view or group_service.get_preferred_view(uid, group_id)
    rankings = group_service.group_rankings(group_id, view, sort_by, user_id=uid)
    return {"view": view, "sort_by": sort_by, "rankings": [asdict(r) for r in rankings]}


@router.get("/groups/{group_id}/points_preview")
def points_preview_api(request: Request, team_a_size: int, team_b_size: int, winning_team: str):
    points = group_service.preview_match_points(team_a_size, team_b_size, winning_team)
    language = request.headers.get("Accept-Language")
    return {"points": points, "label": translate("group.pointsAwarded", language, points=points)}


@router.get("/groups/{group_id}/preference")
def get_preference_api(group_id: str, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return {"preferred_view": group_service.get_preferred_view(uid, group_id)}


@router.put("/groups/{group_id}/preference")
def set_preference_api(
    group_id: str, data: PreferenceUpdate, authorization: str | None = Header(None)
):
    uid = require_auth(authorization)
    pref = group_service.set_preferred_view(uid, group_id, data.preferred_view)
    return {"status": "ok", "preferred_view": pref.preferred_view}
