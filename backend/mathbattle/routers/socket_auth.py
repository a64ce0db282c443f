from ..models.users import User
from .auth import verify_token


def extract_socket_token(environ, auth):
    token = None

    # Socket.IO auth payload
    if auth and isinstance(auth, dict):
        token = auth.get("token")

    # Fallback: Authorization header
    if not token:
        token = environ.get("HTTP_AUTHORIZATION")

    if not token or not str(token).strip():
        return None
    return str(token).strip()


def authenticate_socket_with_token(db, token: str):
    user_id = verify_token(token)
    if user_id is None:
        return None
    return db.get(User, user_id)
