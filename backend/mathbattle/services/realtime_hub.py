import asyncio
import datetime
import logging

from fastapi.encoders import jsonable_encoder

logger = logging.getLogger("uvicorn")


def battle_room(battle_id) -> str:
    return f"battle_{battle_id}"


class RealtimeHub:
    """Live connection registry for battles.

    Keeps which socket ids belong to which user and which battle rooms they
    watch. Nothing here is game outcome state: everything can be rebuilt
    from the battle tables when clients reconnect.

    Emits are best-effort. A missing connection is a no-op and a failed
    send is logged, never raised to the caller.
    """

    def __init__(self, sio, countdown_from: int = 3, countdown_interval: float = 1.0):
        self.sio = sio
        self.countdown_from = countdown_from
        self.countdown_interval = countdown_interval

        self.connected_users: dict[str, set[str]] = {}
        self.battle_rooms: dict[str, set[str]] = {}
        self._sid_users: dict[str, str] = {}
        self._countdowns: dict[str, asyncio.Task] = {}

    # connections

    def register_connection(self, user_id, sid: str):
        user_key = str(user_id)
        self.connected_users.setdefault(user_key, set()).add(sid)
        self._sid_users[sid] = user_key

    def unregister_connection(self, sid: str):
        user_key = self._sid_users.pop(sid, None)
        if user_key is not None:
            sids = self.connected_users.get(user_key)
            if sids is not None:
                sids.discard(sid)
                if not sids:
                    del self.connected_users[user_key]

        left = []
        for battle_key, sids in list(self.battle_rooms.items()):
            if sid in sids:
                sids.discard(sid)
                left.append(battle_key)
                if not sids:
                    del self.battle_rooms[battle_key]
        return left

    def is_user_connected(self, user_id) -> bool:
        return str(user_id) in self.connected_users

    # rooms

    async def join_battle_room(self, sid: str, battle_id):
        battle_key = str(battle_id)
        await self.sio.enter_room(sid, battle_room(battle_key))
        self.battle_rooms.setdefault(battle_key, set()).add(sid)
        logger.info("Socket %s entered battle room %s", sid, battle_key)

    async def leave_battle_room(self, sid: str, battle_id):
        battle_key = str(battle_id)
        await self.sio.leave_room(sid, battle_room(battle_key))
        sids = self.battle_rooms.get(battle_key)
        if sids is not None:
            sids.discard(sid)
            if not sids:
                del self.battle_rooms[battle_key]
        logger.info("Socket %s left battle room %s", sid, battle_key)

    def get_battle_room_size(self, battle_id) -> int:
        return len(self.battle_rooms.get(str(battle_id), ()))

    # emits

    async def emit_to_battle(self, battle_id, event: str, payload: dict, skip_sid: str | None = None):
        try:
            await self.sio.emit(
                event,
                jsonable_encoder(payload),
                room=battle_room(battle_id),
                skip_sid=skip_sid,
            )
        except Exception:
            logger.warning("Failed to emit %s to battle %s", event, battle_id, exc_info=True)

    async def emit_to_user(self, user_id, event: str, payload: dict):
        for sid in list(self.connected_users.get(str(user_id), ())):
            try:
                await self.sio.emit(event, jsonable_encoder(payload), to=sid)
            except Exception:
                logger.warning("Failed to emit %s to user %s", event, user_id, exc_info=True)

    async def emit_error(self, sid: str, message: str):
        try:
            await self.sio.emit("error", {"message": message}, to=sid)
        except Exception:
            logger.warning("Failed to send error to %s", sid, exc_info=True)

    # countdown

    def start_synchronized_countdown(self, battle_id) -> bool:
        """Run one server-side countdown for the whole battle room.

        Returns False when a countdown for this battle is already running.
        """
        battle_key = str(battle_id)
        running = self._countdowns.get(battle_key)
        if running is not None and not running.done():
            logger.info("Countdown already running for battle %s", battle_key)
            return False

        task = self.sio.start_background_task(self.run_countdown, battle_key)
        self._countdowns[battle_key] = task
        return True

    async def run_countdown(self, battle_id):
        battle_key = str(battle_id)
        try:
            for count in range(self.countdown_from, 0, -1):
                await self.emit_to_battle(battle_key, "countdown-tick", {
                    "battleId": battle_key,
                    "count": count,
                    "go": False,
                })
                await self.sio.sleep(self.countdown_interval)

            await self.emit_to_battle(battle_key, "countdown-tick", {
                "battleId": battle_key,
                "count": 0,
                "go": True,
                "started_at": datetime.datetime.now(datetime.timezone.utc),
            })
            logger.info("Countdown finished for battle %s", battle_key)
        finally:
            self._countdowns.pop(battle_key, None)

    async def shutdown(self):
        tasks = [t for t in self._countdowns.values() if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._countdowns.clear()
        self.connected_users.clear()
        self.battle_rooms.clear()
        self._sid_users.clear()
