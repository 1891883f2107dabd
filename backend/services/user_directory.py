"""
User directory: maps a session email to the user id that owns history records.
"""
import uuid
from typing import Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from database import User, create_session_factory
from models import AuthContext, UserCreate, UserProfile


class UserExistsError(Exception):
    """Raised when registering an email that is already in the directory"""


class UserDirectory:
    """Lookup and registration of users by email"""

    def __init__(self, session_factory: sessionmaker = None):
        self.session_factory = session_factory or create_session_factory()

    def create_user(self, user: UserCreate) -> UserProfile:
        email = user.email.strip()
        row = User(
            id=str(uuid.uuid4()),
            email=email,
            first_name=user.first_name.strip(),
            last_name=user.last_name.strip(),
        )
        try:
            with self.session_factory() as session:
                session.add(row)
                session.commit()
                profile = self._to_profile(row)
        except IntegrityError as e:
            raise UserExistsError(f"User already exists with this email: {email}") from e

        logger.info(f"Registered user {profile.id} <{email}>")
        return profile

    def get_user_by_email(self, email: str) -> Optional[UserProfile]:
        with self.session_factory() as session:
            row = session.query(User).filter(User.email == email.strip()).first()
            return self._to_profile(row) if row else None

    def resolve_context(self, email: Optional[str]) -> Optional[AuthContext]:
        """Auth context for a session email, or None when the caller is unknown."""
        if not email or not email.strip():
            return None

        user = self.get_user_by_email(email)
        if user is None:
            logger.warning(f"No user found for session email {email}")
            return None
        return AuthContext(user_id=user.id, email=user.email)

    @staticmethod
    def _to_profile(row: User) -> UserProfile:
        return UserProfile(
            id=row.id,
            email=row.email,
            first_name=row.first_name or "",
            last_name=row.last_name or "",
        )
