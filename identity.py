from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings


class UnauthorizedError(Exception):
    pass


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.identity_secret, salt="owner-identity")


def issue_owner_token(owner: str) -> str:
    if not owner:
        raise ValueError("Owner identity must not be empty")
    return _serializer().dumps({"sub": owner})


def owner_from_token(token: str, max_age_secs: Optional[int] = None) -> str:
    settings = get_settings()
    max_age = max_age_secs or settings.identity_max_age_secs
    try:
        data = _serializer().loads(token, max_age=max_age)
    except SignatureExpired as exc:
        raise UnauthorizedError("Identity token expired") from exc
    except BadSignature as exc:
        raise UnauthorizedError("Invalid identity token") from exc

    owner = data.get("sub") if isinstance(data, dict) else None
    if not isinstance(owner, str) or not owner:
        raise UnauthorizedError("Identity token carries no owner")
    return owner


def resolve_owner(authorization: Optional[str]) -> str:
    """Turn an ``Authorization`` header value into an owner id."""
    if not authorization:
        dev_owner = get_settings().dev_owner
        if dev_owner:
            return dev_owner
        raise UnauthorizedError("Authentication required")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Authentication required")
    return owner_from_token(token.strip())
