import hashlib
import hmac

from werkzeug.security import check_password_hash, generate_password_hash

from receipts.config import settings


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, encoded: str | None) -> bool:
    if not encoded:
        return False
    try:
        return check_password_hash(encoded, password)
    except ValueError:
        return False


def make_access_token(public_id: str, password_hash: str) -> str:
    """Token proving the holder knew the password for this public link.

    Bound to the current password hash, so changing the password invalidates
    every token issued before the change.
    """
    message = f"{public_id}:{password_hash}".encode()
    return hmac.new(settings.secret_key.encode(), message, hashlib.sha256).hexdigest()


def check_access_token(public_id: str, password_hash: str, token: str | None) -> bool:
    if not token:
        return False
    return hmac.compare_digest(make_access_token(public_id, password_hash), token)
