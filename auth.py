from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings


class AuthError(ValueError):
    pass


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.secret_key, salt="access-token")


def issue_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id})


def verify_token(token: str, max_age_hours: Optional[int] = None) -> int:
    if max_age_hours is None:
        max_age_hours = get_settings().token_max_age_hours
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except BadSignature as exc:
        raise AuthError("Invalid or expired token") from exc

    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int) or user_id <= 0:
        raise AuthError("Invalid token payload")
    return user_id


def user_id_from_header(authorization: Optional[str]) -> int:
    if not authorization:
        raise AuthError("Not authorized, no token")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Not authorized, malformed token")
    return verify_token(token.strip())
