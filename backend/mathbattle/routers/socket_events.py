import logging
import uuid

import socketio

from ..errors import BattleError
from ..models.battle_sessions import BattleSession
from ..services import battle_service
from ..services.realtime_hub import RealtimeHub
from .socket_auth import authenticate_socket_with_token, extract_socket_token

logger = logging.getLogger("uvicorn")


def _as_uuid(value):
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def register_socket_events(sio: socketio.AsyncServer, hub: RealtimeHub, session_factory):
    """Attach the battle protocol handlers to `sio`.

    HTTP stays the authoritative write path; `submit-round` and
    `complete-battle` run the same coordinator operations for clients that
    prefer to stay on the socket.
    """

    @sio.event
    async def connect(sid, environ, auth=None):
        token = extract_socket_token(environ, auth)
        if not token:
            logger.warning("Socket %s rejected: no token", sid)
            raise socketio.exceptions.ConnectionRefusedError("Authentication error")

        db = session_factory()
        try:
            user = authenticate_socket_with_token(db, token)
            if not user:
                logger.warning("Socket %s rejected: invalid token", sid)
                raise socketio.exceptions.ConnectionRefusedError("Authentication error")

            await sio.save_session(sid, {"user_id": str(user.id), "username": user.username})
            hub.register_connection(user.id, sid)

            # resume events for battles still in progress
            for battle_id in battle_service.active_battle_ids(db, user.id):
                await hub.join_battle_room(sid, battle_id)
        finally:
            db.close()

        logger.info("Socket connected: %s (%s)", user.username, sid)

    @sio.event
    async def disconnect(sid, *args):
        rooms = hub.unregister_connection(sid)
        logger.info("Socket disconnected: %s, left %d battle rooms", sid, len(rooms))

    @sio.on("join-battle")
    async def join_battle(sid, data):
        session = await sio.get_session(sid)
        battle_id = _as_uuid((data or {}).get("battleId"))
        if battle_id is None:
            await hub.emit_error(sid, "Invalid battle id")
            return

        db = session_factory()
        try:
            battle = db.get(BattleSession, battle_id)
            if battle is None:
                await hub.emit_error(sid, "Battle not found")
                return
            if not battle.is_public and battle.side_of(_as_uuid(session["user_id"])) is None:
                await hub.emit_error(sid, "Access denied to this private battle")
                return
        finally:
            db.close()

        await hub.join_battle_room(sid, battle_id)
        await hub.emit_to_battle(battle_id, "player-joined", {
            "userId": session["user_id"],
            "username": session["username"],
            "battleId": battle_id,
        }, skip_sid=sid)

    @sio.on("leave-battle")
    async def leave_battle(sid, data):
        session = await sio.get_session(sid)
        battle_id = _as_uuid((data or {}).get("battleId"))
        if battle_id is None:
            await hub.emit_error(sid, "Invalid battle id")
            return

        await hub.leave_battle_room(sid, battle_id)
        await hub.emit_to_battle(battle_id, "player-left", {
            "userId": session["user_id"],
            "username": session["username"],
            "battleId": battle_id,
        })

    @sio.on("submit-round")
    async def submit_round(sid, data):
        session = await sio.get_session(sid)
        data = data or {}
        battle_id = _as_uuid(data.get("battleId"))
        if battle_id is None:
            await hub.emit_error(sid, "Invalid battle id")
            return

        db = session_factory()
        try:
            await battle_service.submit_battle_round(
                db,
                hub,
                _as_uuid(session["user_id"]),
                battle_id,
                data.get("roundNumber"),
                data.get("userSymbol"),
                data.get("responseTime"),
            )
        except BattleError as exc:
            await hub.emit_error(sid, exc.message)
        finally:
            db.close()

    @sio.on("complete-battle")
    async def complete_battle(sid, data):
        session = await sio.get_session(sid)
        data = data or {}
        battle_id = _as_uuid(data.get("battleId"))
        if battle_id is None:
            await hub.emit_error(sid, "Invalid battle id")
            return

        db = session_factory()
        try:
            await battle_service.complete_battle(
                db, hub, _as_uuid(session["user_id"]), battle_id, data.get("totalTime")
            )
        except BattleError as exc:
            await hub.emit_error(sid, exc.message)
        finally:
            db.close()

    return sio
