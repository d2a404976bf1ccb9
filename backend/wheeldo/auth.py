"""
Firebase authentication for FastAPI.

Verifies Firebase ID tokens, then mirrors the user into the local users
table so ownership and notification messages can refer to them.
"""

import os
from pathlib import Path
import firebase_admin
from firebase_admin import auth, credentials
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from wheeldo.database import get_session
from wheeldo.exceptions import UnauthorizedError
from wheeldo.services.users import ensure_user
from wheeldo.logging_config import get_logger

logger = get_logger(__name__)


def init_firebase() -> None:
    """Initialize the Firebase Admin SDK once per process."""
    try:
        firebase_admin.get_app()
        return
    except ValueError:
        pass

    # __file__ = backend/wheeldo/auth.py -> .parent.parent = backend/
    backend_dir = Path(__file__).parent.parent

    possible_paths = [
        backend_dir / "serviceAccountKey.json",
        backend_dir / "firebase-service-account.json",
    ]
    possible_paths.extend(backend_dir.glob("*-firebase-adminsdk-*.json"))

    env_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS", "")
    if env_path:
        possible_paths.append(Path(env_path))

    for key_path in possible_paths:
        if key_path.exists() and key_path.is_file():
            firebase_admin.initialize_app(credentials.Certificate(str(key_path)))
            logger.info(f"Firebase Admin SDK initialized with: {key_path.name}")
            return

    logger.warning("No Firebase service account key found! Token verification may fail.")
    firebase_admin.initialize_app()


security = HTTPBearer(auto_error=False)


class AuthenticatedUser:
    """The verified caller of a request."""

    def __init__(self, uid: str, email: str | None = None, name: str | None = None, image: str | None = None):
        self.uid = uid
        self.email = email
        self.name = name
        self.image = image

    def __repr__(self):
        return f"AuthenticatedUser(uid={self.uid}, email={self.email})"


async def verify_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> AuthenticatedUser:
    """
    Verify the Firebase ID token from the Authorization header.

    Raises:
        UnauthorizedError: if the token is missing, invalid or expired.
    """
    if credentials is None:
        raise UnauthorizedError("Authentication required")

    try:
        decoded_token = auth.verify_id_token(credentials.credentials)
    except auth.ExpiredIdTokenError:
        logger.warning("Expired Firebase token")
        raise UnauthorizedError("Token has expired")
    except auth.InvalidIdTokenError:
        logger.warning("Invalid Firebase token")
        raise UnauthorizedError("Invalid authentication token")
    except Exception as e:
        logger.error(f"Authentication error: {e}")
        raise UnauthorizedError("Authentication failed")

    return AuthenticatedUser(
        uid=decoded_token["uid"],
        email=decoded_token.get("email"),
        name=decoded_token.get("name"),
        image=decoded_token.get("picture"),
    )


async def get_current_user(
    identity: AuthenticatedUser = Depends(verify_token),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedUser:
    """Authenticated caller, with their local user row guaranteed to exist."""
    await ensure_user(
        session,
        identity.uid,
        email=identity.email,
        name=identity.name,
        image=identity.image,
    )
    logger.debug(f"Authenticated user: {identity.uid} ({identity.email})")
    return identity
