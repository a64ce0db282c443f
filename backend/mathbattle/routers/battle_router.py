import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from starlette import status

from ..config import settings
from ..db import get_db
from ..models.users import User
from ..routers.auth import get_current_user
from ..services import battle_service
from ..services.realtime_hub import RealtimeHub

router = APIRouter(prefix="/battle", tags=["battle"])
db_dependency = Annotated[Session, Depends(get_db)]


def get_hub(request: Request) -> RealtimeHub:
    return request.app.state.hub


hub_dependency = Annotated[RealtimeHub, Depends(get_hub)]
user_dependency = Annotated[User, Depends(get_current_user)]


class CreateBattleRequest(BaseModel):
    number_of_rounds: int = 10
    time_limit: int = 600
    is_public: bool = True

class JoinBattleRequest(BaseModel):
    battle_code: str

class StartBattleRequest(BaseModel):
    battle_id: uuid.UUID

class SubmitRoundRequest(BaseModel):
    battle_session_id: uuid.UUID
    round_number: int
    user_symbol: str
    response_time: float | None = Field(default=None, ge=0, allow_inf_nan=False)

class CompleteBattleRequest(BaseModel):
    battle_session_id: uuid.UUID
    total_time: float | None = Field(default=None, ge=0, allow_inf_nan=False)


@router.post("/create", status_code=status.HTTP_201_CREATED, summary="Create a new battle session")
def create_battle(request: CreateBattleRequest, db: db_dependency, current_user: user_dependency):
    return battle_service.create_battle(
        db,
        current_user.id,
        number_of_rounds=request.number_of_rounds,
        time_limit=request.time_limit,
        is_public=request.is_public,
        code_attempts=settings.BATTLE_CODE_ATTEMPTS,
    )


@router.post("/join", summary="Join a battle using its code")
async def join_battle(request: JoinBattleRequest, db: db_dependency, hub: hub_dependency,
                      current_user: user_dependency):
    return await battle_service.join_battle(db, hub, current_user.id, request.battle_code)


@router.post("/start", summary="Creator starts the synchronized countdown")
async def start_battle(request: StartBattleRequest, db: db_dependency, hub: hub_dependency,
                       current_user: user_dependency):
    return await battle_service.start_battle(db, hub, current_user.id, request.battle_id)


@router.post("/submit-round", summary="Submit an answer for a battle round")
async def submit_round(request: SubmitRoundRequest, db: db_dependency, hub: hub_dependency,
                       current_user: user_dependency):
    return await battle_service.submit_battle_round(
        db,
        hub,
        current_user.id,
        request.battle_session_id,
        request.round_number,
        request.user_symbol,
        request.response_time,
    )


@router.post("/complete", summary="Mark your side of the battle as completed")
async def complete_battle(request: CompleteBattleRequest, db: db_dependency, hub: hub_dependency,
                          current_user: user_dependency):
    return await battle_service.complete_battle(
        db, hub, current_user.id, request.battle_session_id, request.total_time
    )


@router.get("/my-battles", summary="Battle history of the logged in user")
def my_battles(db: db_dependency, current_user: user_dependency,
               page: int = Query(1), limit: int = Query(20), status: str | None = Query(None)):
    return battle_service.list_my_battles(db, current_user.id, page=page, limit=limit, status=status)


@router.get("/all", summary="Public battles that are not completed")
def all_battles(db: db_dependency, page: int = Query(1), limit: int = Query(30)):
    return battle_service.list_public_battles(db, page=page, limit=limit)


@router.get("/available", summary="Public joinable or active battles with progress")
def available_battles(db: db_dependency, page: int = Query(1), limit: int = Query(30)):
    return battle_service.list_available_battles(db, page=page, limit=limit)


@router.get("/{battle_id}", summary="Battle session details")
def get_battle(battle_id: uuid.UUID, db: db_dependency, current_user: user_dependency):
    return battle_service.get_battle(db, current_user.id, battle_id)
