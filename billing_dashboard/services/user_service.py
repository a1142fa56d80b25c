"""Service for dashboard user registration and token authentication."""

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import bcrypt
import jwt

from ..domain.errors import ValidationError
from ..domain.models import ActivityAction, User
from ..domain.ports.persistence import DuplicateRecordError, UserRepository
from .activity_service import ActivityLogger


class UserService:
    """Service for managing user authentication and registration."""

    def __init__(
        self,
        user_repository: UserRepository,
        activity_logger: ActivityLogger,
        jwt_secret: str,
        jwt_algorithm: str = "HS256",
        jwt_expiration_hours: int = 168,
    ):
        self.user_repository = user_repository
        self.activity_logger = activity_logger
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm
        self.jwt_expiration_hours = jwt_expiration_hours

    def register(self, email: str, password: str, first_name: str = "", last_name: str = "") -> User:
        """
        Register a new user.

        Args:
            email: User email
            password: Plain text password
            first_name: Given name
            last_name: Family name

        Returns:
            Created User

        Raises:
            ValidationError: If email already exists
        """
        if self.user_repository.get_user_by_email(email):
            raise ValidationError("Email already registered", entity="user", operation="register")

        password_hash = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")
        try:
            user = self.user_repository.create_user(email, password_hash, first_name, last_name)
        except DuplicateRecordError as exc:
            raise ValidationError("Email already registered", entity="user", operation="register") from exc

        self.activity_logger.record(user.id, ActivityAction.USER_REGISTERED, "User registered")
        return user

    def authenticate(self, email: str, password: str) -> Optional[User]:
        """Return the user when the password matches, None otherwise."""
        user = self.user_repository.get_user_by_email(email)
        if not user:
            return None

        if not bcrypt.checkpw(password.encode("utf-8"), user.password_hash.encode("utf-8")):
            return None

        return user

    def login(self, email: str, password: str) -> Optional[Tuple[User, str]]:
        """Authenticate, record the login and issue a token."""
        user = self.authenticate(email, password)
        if not user:
            return None
        self.activity_logger.record(user.id, ActivityAction.LOGIN, "User logged in")
        return user, self.create_token(user)

    def logout(self, user: User) -> None:
        # Tokens are stateless; logging out only leaves a trail entry.
        self.activity_logger.record(user.id, ActivityAction.LOGOUT, "User logged out")

    def create_token(self, user: User) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "user_id": user.id,
            "email": user.email,
            "exp": now + timedelta(hours=self.jwt_expiration_hours),
            "iat": now,
        }
        return jwt.encode(payload, self.jwt_secret, algorithm=self.jwt_algorithm)

    def verify_token(self, token: str) -> Optional[dict]:
        """
        Verify and decode JWT token.

        Args:
            token: JWT token string

        Returns:
            Decoded payload if valid, None otherwise
        """
        try:
            return jwt.decode(token, self.jwt_secret, algorithms=[self.jwt_algorithm])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

    def get_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID."""
        return self.user_repository.get_user_by_id(user_id)
