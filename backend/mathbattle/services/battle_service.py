"""Battle coordinator.

Every operation re-reads the battle from the database and writes through
conditional UPDATEs, so two players hitting the same battle at the same
time can never both win a race (answer twice, join twice, finish twice).
Live notifications go through the RealtimeHub after the commit.
"""
import datetime
import logging
import math
from contextlib import contextmanager

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    ResourceExhaustedError,
    ValidationError,
)
from ..models.battle_round_details import SYMBOLS, BattleRoundDetail
from ..models.battle_sessions import BattleSession, BattleStatus
from .realtime_hub import RealtimeHub
from .round_generator import MAX_ROUNDS, MIN_ROUNDS, generate_battle_code, generate_battle_rounds
from .users import resolve_user, user_summary

logger = logging.getLogger("uvicorn")

BASE_ROUND_SCORE = 100
SPEED_BONUS_WINDOW = 60  # seconds
MAX_PAGE_SIZE = 100
STATUS_FILTERS = ("completed", "waiting", "active")


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


@contextmanager
def db_errors(db: Session, action: str):
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Database error while %s", action)
        raise InternalError("Server error", detail=str(exc)) from exc


# scoring rules

def round_score(is_correct: bool, response_time: float | None) -> int:
    if not is_correct:
        return 0
    elapsed = SPEED_BONUS_WINDOW if response_time is None else response_time
    return BASE_ROUND_SCORE + math.floor(max(0, SPEED_BONUS_WINDOW - elapsed))


def side_totals(rounds, side: str) -> tuple[int, int]:
    """(correct_answers, score) for one side, recomputed from the rounds."""
    correct_answers = 0
    score = 0
    for battle_round in rounds:
        is_correct = getattr(battle_round, f"{side}_is_correct")
        if is_correct:
            correct_answers += 1
            score += round_score(True, getattr(battle_round, f"{side}_response_time"))
    return correct_answers, score


def determine_round_winner(creator_is_correct, opponent_is_correct, creator_time, opponent_time) -> str:
    if creator_is_correct and not opponent_is_correct:
        return "creator"
    if opponent_is_correct and not creator_is_correct:
        return "opponent"
    if creator_is_correct and opponent_is_correct:
        creator_time = creator_time or 0
        opponent_time = opponent_time or 0
        if creator_time < opponent_time:
            return "creator"
        if opponent_time < creator_time:
            return "opponent"
    return "tie"


def determine_battle_winner(battle: BattleSession):
    """(winner_id, reason) once both sides completed.

    Equal score and equal time goes to the opponent.
    """
    creator_score = battle.creator_score or 0
    opponent_score = battle.opponent_score or 0
    creator_time = battle.creator_total_time or 0
    opponent_time = battle.opponent_total_time or 0

    if creator_score > opponent_score:
        return battle.creator_id, "Higher total points"
    if opponent_score > creator_score:
        return battle.opponent_id, "Higher total points"
    if creator_time < opponent_time:
        return battle.creator_id, "Equal points, faster time"
    if opponent_time < creator_time:
        return battle.opponent_id, "Equal points, faster time"
    return battle.opponent_id, "Equal points and time, opponent wins by default"


# serializers

def seconds_since(ts) -> int:
    if ts is None:
        return 0
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=datetime.timezone.utc)
    return round((utcnow() - ts).total_seconds())


def public_rounds(rounds) -> list[dict]:
    return [
        {
            "round_number": r.round_number,
            "first_number": r.first_number,
            "second_number": r.second_number,
        }
        for r in rounds
    ]


def round_detail(battle: BattleSession, r: BattleRoundDetail) -> dict:
    revealed = battle.completed or r.both_answered
    return {
        "round_number": r.round_number,
        "first_number": r.first_number,
        "second_number": r.second_number,
        "correct_symbol": r.correct_symbol if revealed else None,
        "creator_answered": r.creator_symbol is not None,
        "creator_symbol": r.creator_symbol,
        "creator_response_time": r.creator_response_time,
        "creator_is_correct": r.creator_is_correct,
        "opponent_answered": r.opponent_symbol is not None,
        "opponent_symbol": r.opponent_symbol,
        "opponent_response_time": r.opponent_response_time,
        "opponent_is_correct": r.opponent_is_correct,
        "round_winner": r.round_winner,
        "both_answered": r.both_answered,
    }


def session_summary(battle: BattleSession) -> dict:
    return {
        "id": battle.id,
        "battle_code": battle.battle_code,
        "status": battle.status,
        "number_of_rounds": battle.number_of_rounds,
        "time_limit": battle.time_limit,
        "is_public": battle.is_public,
        "created_at": battle.created_at,
        "started_at": battle.started_at,
    }


def side_results(battle: BattleSession, side: str) -> dict:
    user = battle.creator if side == "creator" else battle.opponent
    return {
        **(user_summary(user) or {}),
        "score": getattr(battle, f"{side}_score"),
        "correct_answers": getattr(battle, f"{side}_correct_answers"),
        "total_time": getattr(battle, f"{side}_total_time"),
        "completed": getattr(battle, f"{side}_completed"),
    }


def battle_results(battle: BattleSession) -> dict:
    return {
        "battle_id": battle.id,
        "battle_code": battle.battle_code,
        "winner_id": battle.winner_id,
        "winner": user_summary(battle.winner),
        "win_reason": determine_battle_winner(battle)[1],
        "creator": side_results(battle, "creator"),
        "opponent": side_results(battle, "opponent"),
        "completed_at": battle.completed_at,
    }


def pagination(page: int, limit: int, total: int, total_key: str) -> dict:
    return {
        "current_page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
        total_key: total,
        "per_page": limit,
    }


def check_paging(page: int, limit: int):
    if page < 1:
        raise ValidationError("Page must be 1 or greater.")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}.")


def as_number(kind, value, message):
    """Finite int or float from a request value, None counting as zero.

    Socket payloads skip pydantic, so non-finite and non-integral values
    are turned away here.
    """
    if value is None:
        return kind(0)
    if isinstance(value, bool):
        raise ValidationError(message)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(message)
    if not math.isfinite(number):
        raise ValidationError(message)
    if kind is int:
        if not number.is_integer():
            raise ValidationError(message)
        return int(number)
    return number


def load_battle(db: Session, battle_id, message="Battle session not found.") -> BattleSession:
    battle = db.get(BattleSession, battle_id)
    if battle is None:
        raise NotFoundError(message)
    return battle


# operations

def create_battle(
    db: Session,
    creator_id,
    number_of_rounds: int = 10,
    time_limit: int = 600,
    is_public: bool = True,
    code_attempts: int = 10,
) -> dict:
    if number_of_rounds is None or number_of_rounds < MIN_ROUNDS or number_of_rounds > MAX_ROUNDS:
        raise ValidationError(f"Number of rounds must be between {MIN_ROUNDS} and {MAX_ROUNDS}.")
    if time_limit is None or time_limit <= 0:
        raise ValidationError("Time limit must be a positive number of seconds.")

    with db_errors(db, "creating battle"):
        try:
            creator = resolve_user(db, creator_id)
        except NotFoundError:
            raise NotFoundError("Creator not found.")

        battle = None
        for _ in range(code_attempts):
            battle_code = generate_battle_code()
            if db.query(BattleSession.id).filter(BattleSession.battle_code == battle_code).first():
                continue

            battle = BattleSession(
                battle_code=battle_code,
                creator_id=creator.id,
                status=BattleStatus.open.value,
                number_of_rounds=number_of_rounds,
                time_limit=time_limit,
                is_public=is_public,
            )
            battle.rounds = [BattleRoundDetail(**r) for r in generate_battle_rounds(number_of_rounds)]
            db.add(battle)
            try:
                db.commit()
            except IntegrityError:
                # code taken between the check and the insert
                db.rollback()
                battle = None
                continue
            break

        if battle is None:
            raise ResourceExhaustedError("Failed to generate unique battle code. Please try again.")

        db.refresh(battle)
        logger.info("Battle %s created by %s (%s rounds)", battle.battle_code, creator.username, number_of_rounds)

        return {
            "message": "Battle created successfully! Share the battle code with your opponent.",
            "battle_session": session_summary(battle),
            "creator": user_summary(battle.creator),
            "rounds": public_rounds(battle.rounds),
        }


def _join_payload(battle: BattleSession, message: str, is_creator: bool = False) -> dict:
    return {
        "message": message,
        "battle_session": session_summary(battle),
        "creator": user_summary(battle.creator),
        "opponent": user_summary(battle.opponent),
        "rounds": public_rounds(battle.rounds),
        "is_creator": is_creator,
    }


def _existing_membership(battle: BattleSession, user_id):
    """Join outcome that does not need a write, or None if the slot is free."""
    if battle.state is BattleStatus.finished:
        raise ConflictError("This battle has already been completed.")
    if battle.creator_id == user_id:
        return _join_payload(battle, "This is your battle. Redirecting to battle screen...", is_creator=True)
    if battle.opponent_id == user_id:
        return _join_payload(battle, "You are already part of this battle. Resuming...")
    if battle.opponent_id is not None:
        raise ConflictError("This battle already has an opponent.")
    return None


async def join_battle(db: Session, hub: RealtimeHub, opponent_id, battle_code: str) -> dict:
    code = (battle_code or "").strip().upper()
    if not code:
        raise ValidationError("Battle code is required.")

    with db_errors(db, "joining battle"):
        battle = db.query(BattleSession).filter(BattleSession.battle_code == code).first()
        if battle is None:
            raise NotFoundError("Battle not found. Please check the battle code.")

        existing = _existing_membership(battle, opponent_id)
        if existing is not None:
            return existing

        try:
            opponent = resolve_user(db, opponent_id)
        except NotFoundError:
            raise NotFoundError("Opponent not found.")

        battle_id = battle.id
        claimed = db.execute(
            update(BattleSession)
            .where(
                BattleSession.id == battle_id,
                BattleSession.status == BattleStatus.open.value,
                BattleSession.opponent_id.is_(None),
            )
            .values(
                opponent_id=opponent.id,
                started_at=utcnow(),
                status=BattleStatus.active.value,
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        db.commit()
        db.refresh(battle)

        if not claimed:
            existing = _existing_membership(battle, opponent_id)
            if existing is not None:
                return existing
            raise ConflictError("This battle already has an opponent.")

        payload = _join_payload(battle, "Successfully joined battle! The battle has started.")

    logger.info("User %s joined battle %s", opponent.username, battle.battle_code)
    await hub.emit_to_battle(battle_id, "opponent-joined", {
        "battleId": battle_id,
        "opponent": payload["opponent"],
        "started_at": payload["battle_session"]["started_at"],
    })
    return payload


async def start_battle(db: Session, hub: RealtimeHub, creator_id, battle_id) -> dict:
    with db_errors(db, "starting battle"):
        battle = load_battle(db, battle_id, "Battle not found.")

        if battle.creator_id != creator_id:
            raise ForbiddenError("Only the battle creator can start the battle.")
        if battle.opponent_id is None:
            raise ValidationError("Cannot start battle: no opponent has joined yet.")
        if battle.state is BattleStatus.finished:
            raise ConflictError("Battle has already been completed.")

        creator = user_summary(battle.creator)
        opponent = user_summary(battle.opponent)

    await hub.emit_to_battle(battle.id, "creator-started-battle", {
        "battleId": battle.id,
        "message": "Creator started the battle! Get ready...",
        "creator": {"id": creator["id"], "username": creator["username"]},
        "opponent": {"id": opponent["id"], "username": opponent["username"]},
    })
    started = hub.start_synchronized_countdown(battle.id)
    logger.info("Battle %s started by creator", battle.battle_code)

    return {
        "message": "Battle started successfully! Countdown beginning...",
        "battle_id": battle.id,
        "status": "countdown_started" if started else "countdown_in_progress",
    }


async def submit_battle_round(
    db: Session,
    hub: RealtimeHub,
    user_id,
    battle_session_id,
    round_number: int,
    user_symbol: str,
    response_time: float | None = None,
) -> dict:
    if user_symbol not in SYMBOLS:
        raise ValidationError("Invalid symbol. Must be >, <, or =.")
    if round_number is None:
        raise ValidationError("Round number is required.")
    round_number = as_number(int, round_number, "Round number must be an integer.")
    response_time = as_number(float, response_time, "Response time must be a finite number.")
    if response_time < 0:
        raise ValidationError("Response time cannot be negative.")

    with db_errors(db, "submitting round"):
        battle = load_battle(db, battle_session_id)

        side = battle.side_of(user_id)
        if side is None:
            raise ForbiddenError("You are not part of this battle.")
        if battle.state is not BattleStatus.active:
            raise ConflictError("Battle is not active.")

        battle_round = (
            db.query(BattleRoundDetail)
            .filter(
                BattleRoundDetail.battle_session_id == battle.id,
                BattleRoundDetail.round_number == round_number,
            )
            .first()
        )
        if battle_round is None:
            raise NotFoundError("Round not found.")

        battle_id = battle.id
        is_correct = user_symbol == battle_round.correct_symbol
        symbol_column = getattr(BattleRoundDetail, f"{side}_symbol")

        written = db.execute(
            update(BattleRoundDetail)
            .where(BattleRoundDetail.id == battle_round.id, symbol_column.is_(None))
            .values({
                f"{side}_symbol": user_symbol,
                f"{side}_response_time": response_time,
                f"{side}_is_correct": is_correct,
                f"{side}_answered_at": utcnow(),
            })
            .execution_options(synchronize_session=False)
        ).rowcount
        if not written:
            db.rollback()
            raise ConflictError("You have already answered this round.")

        db.refresh(battle_round)
        resolved_now = False
        if battle_round.both_answered and battle_round.round_winner is None:
            winner = determine_round_winner(
                battle_round.creator_is_correct,
                battle_round.opponent_is_correct,
                battle_round.creator_response_time,
                battle_round.opponent_response_time,
            )
            resolved_now = bool(db.execute(
                update(BattleRoundDetail)
                .where(BattleRoundDetail.id == battle_round.id, BattleRoundDetail.round_winner.is_(None))
                .values(round_winner=winner)
                .execution_options(synchronize_session=False)
            ).rowcount)

        db.commit()
        db.refresh(battle_round)
        both_answered = battle_round.both_answered
        round_result = {
            "round_number": battle_round.round_number,
            "your_answer": user_symbol,
            "correct_answer": battle_round.correct_symbol,
            "is_correct": is_correct,
            "response_time": response_time,
            "both_answered": both_answered,
            "round_winner": battle_round.round_winner,
        }
        round_completed = None
        if resolved_now:
            round_completed = {
                "battleId": battle_id,
                "roundNumber": battle_round.round_number,
                "correctAnswer": battle_round.correct_symbol,
                "roundWinner": battle_round.round_winner,
                "results": {
                    s: {
                        "symbol": getattr(battle_round, f"{s}_symbol"),
                        "responseTime": getattr(battle_round, f"{s}_response_time"),
                        "isCorrect": getattr(battle_round, f"{s}_is_correct"),
                    }
                    for s in ("creator", "opponent")
                },
            }

    await hub.emit_to_battle(battle_id, "round-submitted", {
        "battleId": battle_id,
        "roundNumber": round_result["round_number"],
        "userId": user_id,
        "userSymbol": user_symbol,
        "responseTime": response_time,
        "isCorrect": is_correct,
        "bothAnswered": both_answered,
        "roundWinner": round_result["round_winner"],
    })
    if round_completed is not None:
        logger.info("Battle %s round %s won by %s", battle_id, round_result["round_number"], round_result["round_winner"])
        await hub.emit_to_battle(battle_id, "round-completed", round_completed)

    return {"message": "Round answer submitted successfully", "round_result": round_result}


def _completion_payload(battle: BattleSession, side: str, message: str) -> dict:
    return {
        "message": message,
        "battle_completed": battle.completed,
        "your_results": {
            "score": getattr(battle, f"{side}_score"),
            "correct_answers": getattr(battle, f"{side}_correct_answers"),
            "total_time": getattr(battle, f"{side}_total_time"),
            "completed": getattr(battle, f"{side}_completed"),
        },
        "battle_results": battle_results(battle) if battle.completed else None,
    }


async def complete_battle(db: Session, hub: RealtimeHub, user_id, battle_session_id, total_time: float | None = None) -> dict:
    total_time = as_number(float, total_time, "Total time must be a finite number.")
    if total_time < 0:
        raise ValidationError("Total time cannot be negative.")

    with db_errors(db, "completing battle"):
        battle = load_battle(db, battle_session_id)

        side = battle.side_of(user_id)
        if side is None:
            raise ForbiddenError("You are not part of this battle.")

        if battle.state is BattleStatus.finished:
            return _completion_payload(battle, side, "Battle already completed.")

        battle_id = battle.id
        rounds = db.query(BattleRoundDetail).filter(BattleRoundDetail.battle_session_id == battle_id).all()
        correct_answers, score = side_totals(rounds, side)

        written = db.execute(
            update(BattleSession)
            .where(BattleSession.id == battle_id, BattleSession.completed.is_(False))
            .values({
                f"{side}_completed": True,
                f"{side}_total_time": total_time,
                f"{side}_correct_answers": correct_answers,
                f"{side}_score": score,
            })
            .execution_options(synchronize_session=False)
        ).rowcount
        if not written:
            db.rollback()
            db.refresh(battle)
            return _completion_payload(battle, side, "Battle already completed.")

        db.refresh(battle)
        finished_now = False
        win_reason = None
        if battle.creator_completed and battle.opponent_completed:
            winner_id, win_reason = determine_battle_winner(battle)
            finished_now = bool(db.execute(
                update(BattleSession)
                .where(
                    BattleSession.id == battle_id,
                    BattleSession.completed.is_(False),
                    BattleSession.creator_completed.is_(True),
                    BattleSession.opponent_completed.is_(True),
                )
                .values(
                    winner_id=winner_id,
                    completed=True,
                    completed_at=utcnow(),
                    status=BattleStatus.finished.value,
                )
                .execution_options(synchronize_session=False)
            ).rowcount)

        db.commit()
        db.refresh(battle)

        if battle.completed:
            payload = _completion_payload(battle, side, "Battle completed successfully!")
        else:
            payload = _completion_payload(battle, side, "Your part of the battle completed. Waiting for opponent.")
        username = (battle.creator if side == "creator" else battle.opponent).username

    if finished_now:
        results = payload["battle_results"]
        logger.info("Battle %s completed. Winner: %s (%s)", battle_id, results["winner_id"], win_reason)
        await hub.emit_to_battle(battle_id, "battle-completed", {
            "battleId": battle_id,
            "winner": results["winner"],
            "win_reason": win_reason,
            "results": {"creator": results["creator"], "opponent": results["opponent"]},
            "completed_at": results["completed_at"],
        })
    elif not payload["battle_completed"]:
        await hub.emit_to_battle(battle_id, "player-completed", {
            "battleId": battle_id,
            "userId": user_id,
            "username": username,
            "message": "Player has completed all rounds",
        })

    return payload


# reads

def get_battle(db: Session, user_id, battle_id) -> dict:
    with db_errors(db, "loading battle"):
        battle = load_battle(db, battle_id)

        if battle.side_of(user_id) is None and not battle.is_public:
            raise ForbiddenError("Access denied to this private battle.")

        return {
            "message": "Battle session retrieved successfully",
            "battle_session": {
                **session_summary(battle),
                "creator_score": battle.creator_score,
                "opponent_score": battle.opponent_score,
                "creator_correct_answers": battle.creator_correct_answers,
                "opponent_correct_answers": battle.opponent_correct_answers,
                "creator_total_time": battle.creator_total_time,
                "opponent_total_time": battle.opponent_total_time,
                "creator_completed": battle.creator_completed,
                "opponent_completed": battle.opponent_completed,
                "completed": battle.completed,
                "completed_at": battle.completed_at,
                "winner_id": battle.winner_id,
            },
            "creator": user_summary(battle.creator),
            "opponent": user_summary(battle.opponent),
            "winner": user_summary(battle.winner),
            "rounds": [round_detail(battle, r) for r in battle.rounds],
        }


def list_my_battles(db: Session, user_id, page: int = 1, limit: int = 20, status: str | None = None) -> dict:
    check_paging(page, limit)
    if status is not None and status not in STATUS_FILTERS:
        raise ValidationError("Status must be one of: completed, waiting, active.")

    with db_errors(db, "listing user battles"):
        query = db.query(BattleSession).filter(
            or_(BattleSession.creator_id == user_id, BattleSession.opponent_id == user_id)
        )
        if status == "completed":
            query = query.filter(BattleSession.completed.is_(True))
        elif status == "waiting":
            query = query.filter(BattleSession.completed.is_(False), BattleSession.opponent_id.is_(None))
        elif status == "active":
            query = query.filter(BattleSession.completed.is_(False), BattleSession.opponent_id.isnot(None))

        total = query.count()
        battles = (
            query.order_by(BattleSession.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        items = []
        for battle in battles:
            is_creator = battle.creator_id == user_id
            items.append({
                "id": battle.id,
                "battle_code": battle.battle_code,
                "status": battle.status,
                "number_of_rounds": battle.number_of_rounds,
                "creator": user_summary(battle.creator),
                "opponent": user_summary(battle.opponent),
                "winner": user_summary(battle.winner),
                "your_role": "creator" if is_creator else "opponent",
                "your_score": battle.creator_score if is_creator else battle.opponent_score,
                "opponent_score": battle.opponent_score if is_creator else battle.creator_score,
                "started_at": battle.started_at,
                "completed_at": battle.completed_at,
                "created_at": battle.created_at,
            })

        return {
            "message": "Battle history retrieved successfully",
            "battles": items,
            "pagination": pagination(page, limit, total, "total_battles"),
        }


def _open_public_battles(db: Session):
    return db.query(BattleSession).filter(
        BattleSession.completed.is_(False),
        BattleSession.is_public.is_(True),
    )


def list_public_battles(db: Session, page: int = 1, limit: int = 30) -> dict:
    check_paging(page, limit)

    with db_errors(db, "listing public battles"):
        query = _open_public_battles(db)
        total = query.count()
        battles = (
            query.order_by(BattleSession.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        return {
            "message": "Available battles retrieved successfully",
            "battles": [
                {
                    "id": b.id,
                    "battle_code": b.battle_code,
                    "number_of_rounds": b.number_of_rounds,
                    "time_limit": b.time_limit,
                    "creator": user_summary(b.creator),
                    "created_at": b.created_at,
                    "time_since_created": seconds_since(b.created_at),
                }
                for b in battles
            ],
            "pagination": pagination(page, limit, total, "total_available"),
        }


def _average(values):
    return sum(values) / len(values) if values else 0


def battle_statistics(rounds) -> dict:
    creator_times = [r.creator_response_time for r in rounds if r.creator_response_time is not None]
    opponent_times = [r.opponent_response_time for r in rounds if r.opponent_response_time is not None]
    return {
        "creator_avg_response_time": _average(creator_times),
        "opponent_avg_response_time": _average(opponent_times),
        "creator_fastest_response": min(creator_times) if creator_times else None,
        "opponent_fastest_response": min(opponent_times) if opponent_times else None,
    }


def battle_progress(battle: BattleSession) -> dict:
    total_rounds = battle.number_of_rounds
    completed_rounds = sum(1 for r in battle.rounds if r.both_answered)
    return {
        "total_rounds": total_rounds,
        "completed_rounds": completed_rounds,
        "creator_completed_rounds": sum(1 for r in battle.rounds if r.creator_symbol is not None),
        "opponent_completed_rounds": sum(1 for r in battle.rounds if r.opponent_symbol is not None),
        "progress_percentage": round(completed_rounds / total_rounds * 100) if total_rounds else 0,
    }


def list_available_battles(db: Session, page: int = 1, limit: int = 30) -> dict:
    check_paging(page, limit)

    with db_errors(db, "listing available battles"):
        query = _open_public_battles(db)
        total = query.count()
        battles = (
            query.options(selectinload(BattleSession.rounds))
            .order_by(BattleSession.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        items = []
        for b in battles:
            items.append({
                "id": b.id,
                "battle_code": b.battle_code,
                "status": b.status,
                "number_of_rounds": b.number_of_rounds,
                "time_limit": b.time_limit,
                "is_public": b.is_public,
                "creator": user_summary(b.creator),
                "opponent": user_summary(b.opponent),
                "winner": user_summary(b.winner),
                "can_join": b.opponent_id is None and not b.completed,
                "is_active": b.opponent_id is not None and not b.completed,
                "completed": b.completed,
                "creator_score": b.creator_score,
                "opponent_score": b.opponent_score,
                "creator_correct_answers": b.creator_correct_answers,
                "opponent_correct_answers": b.opponent_correct_answers,
                "creator_completed": b.creator_completed,
                "opponent_completed": b.opponent_completed,
                "progress": battle_progress(b),
                "created_at": b.created_at,
                "started_at": b.started_at,
                "completed_at": b.completed_at,
                "time_since_created": seconds_since(b.created_at),
                "rounds": [round_detail(b, r) for r in b.rounds],
                "statistics": battle_statistics(b.rounds),
            })

        return {
            "message": "Available battles retrieved successfully",
            "battles": items,
            "pagination": pagination(page, limit, total, "total_available"),
        }


def active_battle_ids(db: Session, user_id) -> list:
    """Battles a reconnecting user should receive events for."""
    rows = (
        db.query(BattleSession.id)
        .filter(
            or_(BattleSession.creator_id == user_id, BattleSession.opponent_id == user_id),
            BattleSession.completed.is_(False),
        )
        .all()
    )
    return [row.id for row in rows]
