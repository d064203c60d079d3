from fastapi import APIRouter, HTTPException, Depends, status
from typing import Annotated
from ....api.deps import CurrentUser
from ....schemas.match_schemas import ChallengeIn, ChallengeOut, InvitesOut, MatchDetailOut
from ....services.match_service import MatchService, NotFriends
from ....repositories.match_repository import MatchRepository
from ....core.supabase_client import get_supabase

router = APIRouter(prefix="/multiplayer", tags=["multiplayer"])


def get_match_service() -> MatchService:
    return MatchService(MatchRepository(get_supabase()))


ServiceDep = Annotated[MatchService, Depends(get_match_service)]


@router.post("/challenge", status_code=status.HTTP_201_CREATED, response_model=ChallengeOut)
async def challenge(payload: ChallengeIn, user_id: CurrentUser, svc: ServiceDep):
    try:
        match_id = svc.challenge(user_id, payload.opponentId, payload.gameType)
    except NotFriends as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return {"matchId": match_id}


@router.get("/invites", response_model=InvitesOut)
async def list_invites(user_id: CurrentUser, svc: ServiceDep):
    return {"invites": svc.list_invites(user_id)}


@router.post("/invites/{match_id}/accept")
async def accept_invite(match_id: int, user_id: CurrentUser, svc: ServiceDep):
    if not svc.accept(match_id, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invite not found")
    return {"matchId": match_id, "message": "Match started"}


@router.post("/invites/{match_id}/decline")
async def decline_invite(match_id: int, user_id: CurrentUser, svc: ServiceDep):
    if not svc.decline(match_id, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invite not found")
    return {"message": "Invite declined"}


@router.get("/matches/{match_id}", response_model=MatchDetailOut)
async def get_match(match_id: int, user_id: CurrentUser, svc: ServiceDep):
    data = svc.details(match_id, user_id)
    if not data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Match not found")
    return data
