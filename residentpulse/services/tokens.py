import uuid
from typing import Optional
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from flask import current_app

def _serializer() -> URLSafeTimedSerializer:
    secret = current_app.config["SECRET_KEY"]
    salt = current_app.config.get("INVITE_TOKEN_SALT", "invite-token-v1")
    return URLSafeTimedSerializer(secret_key=secret, salt=salt)

def generate_invitation(member_id: int, round_id: int) -> str:
    """
    Signed survey link token. The nonce keeps every issued token unique,
    even for the same member and round.
    """
    return _serializer().dumps({"m": member_id, "r": round_id, "n": uuid.uuid4().hex})

def verify_invitation(token: str, max_age_seconds: Optional[int] = None) -> Optional[dict]:
    try:
        data = _serializer().loads(token, max_age=max_age_seconds)
    except (BadSignature, SignatureExpired):
        return None
    if not isinstance(data, dict) or "m" not in data:
        return None
    return {"member_id": data["m"], "round_id": data.get("r")}
