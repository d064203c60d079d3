from fastapi import APIRouter, HTTPException, Depends, Query, status
from typing import Annotated, Optional
from ....api.deps import CurrentUser
from ....schemas.game_schemas import (
    GameTypesOut,
    QuestionsOut,
    RegionsOut,
    SessionCompleteIn,
    SessionCreateIn,
    SessionCreatedOut,
    SessionDetailOut,
)
from ....services.question_service import QuestionService, UnknownGameType
from ....services.session_service import SessionService
from ....repositories.question_repository import QuestionRepository
from ....repositories.session_repository import SessionRepository
from ....core.supabase_client import get_supabase

router = APIRouter(prefix="/games", tags=["games"])


def get_question_service() -> QuestionService:
    return QuestionService(QuestionRepository(get_supabase()))


def get_session_service() -> SessionService:
    return SessionService(SessionRepository(get_supabase()))


QuestionServiceDep = Annotated[QuestionService, Depends(get_question_service)]
SessionServiceDep = Annotated[SessionService, Depends(get_session_service)]


@router.get("/types", response_model=GameTypesOut)
async def list_types(svc: QuestionServiceDep):
    return {"gameTypes": svc.list_types()}


@router.get("/regions", response_model=RegionsOut)
async def list_regions(svc: QuestionServiceDep):
    return {"regions": svc.list_regions()}


@router.get("/questions", response_model=QuestionsOut)
async def get_questions(
    svc: QuestionServiceDep,
    type: Optional[str] = None,
    count: int = Query(10, ge=1),
    difficulty: str = Query("medium", pattern="^(easy|medium|hard)$"),
    region: Optional[str] = None,
    mode: Optional[str] = None,
):
    if not type:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Game type is required")
    try:
        questions = svc.generate(type, count=count, difficulty=difficulty, region=region, mode=mode)
    except UnknownGameType:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid game type")
    return {"questions": [q.to_dict() for q in questions]}


@router.post("/sessions", status_code=status.HTTP_201_CREATED, response_model=SessionCreatedOut)
async def start_session(payload: SessionCreateIn, user_id: CurrentUser, svc: SessionServiceDep):
    session_id = svc.start_session(
        user_id, payload.gameType, payload.gameMode, payload.difficulty, payload.regionFilter
    )
    return {"sessionId": session_id}


@router.patch("/sessions/{session_id}")
async def complete_session(
    session_id: str, payload: SessionCompleteIn, user_id: CurrentUser, svc: SessionServiceDep
):
    found = svc.complete_session(
        session_id,
        user_id,
        payload.score,
        payload.xpEarned,
        payload.correctCount,
        payload.averageTimeMs,
        [a.model_dump() for a in payload.answers],
    )
    if not found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game session not found")
    return {"message": "Game session completed", "sessionId": session_id}


@router.get("/sessions/{session_id}", response_model=SessionDetailOut)
async def get_session(session_id: str, user_id: CurrentUser, svc: SessionServiceDep):
    data = svc.get_session(session_id, user_id)
    if not data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game session not found")
    return data
