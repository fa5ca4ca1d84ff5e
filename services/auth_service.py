import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from core.errors import AuthenticationFailedError, ValidationError
from core.security import create_access_token, get_password_hash, verify_password
from schemas.user import Identity, UserRecord
from services.registry import DuplicateKeyError, UserRepository

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class AuthService:
    def __init__(
        self,
        repository: UserRepository,
        secret_key: str,
        algorithm: str = "HS256",
        token_ttl: timedelta = timedelta(days=7),
    ) -> None:
        self.repository = repository
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.token_ttl = token_ttl
        # compared against when the email is unknown so both paths cost a bcrypt check
        self._dummy_hash = get_password_hash(uuid.uuid4().hex)

    def issue_token(self, identity: Identity) -> str:
        return create_access_token(identity, self.secret_key, self.algorithm, self.token_ttl)

    def signup(
        self,
        username: Optional[str],
        email: Optional[str],
        password: Optional[str],
        confirm_password: Optional[str],
    ) -> Tuple[str, Identity]:
        if not username or not email or not password or not confirm_password:
            raise ValidationError("All fields required")
        if password != confirm_password:
            raise ValidationError("Passwords do not match")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        user = UserRecord(
            id=str(uuid.uuid4()),
            username=username,
            email=email,
            password_hash=get_password_hash(password),
            created_at=datetime.now(timezone.utc),
        )
        try:
            self.repository.add(user)
        except DuplicateKeyError:
            raise ValidationError("User already exists")

        logger.info(f"Registered user {user.username}")
        identity = user.identity()
        return self.issue_token(identity), identity

    def login(self, email: Optional[str], password: Optional[str]) -> Tuple[str, Identity]:
        if not email or not password:
            raise ValidationError("Email and password required")

        user = self.repository.find_by_email(email)
        if user is None:
            verify_password(password, self._dummy_hash)
            raise AuthenticationFailedError()
        if not verify_password(password, user.password_hash):
            raise AuthenticationFailedError()

        identity = user.identity()
        return self.issue_token(identity), identity

    def seed_user(self, username: str, email: str, password: str) -> None:
        """Create a start-up account unless one with the same email exists."""
        if self.repository.find_by_email(email) is not None:
            return
        self.signup(username, email, password, password)
