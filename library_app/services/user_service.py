import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from library_app import security
from library_app.exceptions import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from library_app.models import RoleName, User
from library_app.repositories import UnitOfWork
from library_app.services.librarian_verifier import LibrarianVerifier
from library_app.validators import EmailValidator, PasswordValidator, TextValidator

logger = logging.getLogger(__name__)


class UserService:
    """Kayıt, kimlik doğrulama ve kullanıcı yönetimi."""

    def __init__(
        self,
        unit_of_work: Callable[..., UnitOfWork] = UnitOfWork,
        clock: Callable[[], datetime] = datetime.now,
        verifier: Optional[LibrarianVerifier] = None,
    ) -> None:
        self.unit_of_work = unit_of_work
        self.clock = clock
        self.verifier = verifier or LibrarianVerifier()

    @staticmethod
    def _validated_identity(name: str, email: str, password: str) -> Tuple[str, str, str]:
        name = TextValidator.require(name, "Name is required")
        if not EmailValidator.is_valid_email(email):
            raise ValidationError("Invalid email address")
        PasswordValidator.validate(password)
        return name, EmailValidator.normalize(email), password

    def _create_user(
        self,
        name: str,
        email: str,
        password: str,
        role: RoleName,
        librarian_id: Optional[str] = None,
        is_verified: bool = False,
    ) -> User:
        user = User(
            name=name,
            email=email,
            password_hash=security.hash_password(password),
            role=role,
            librarian_id=librarian_id,
            is_verified=is_verified,
        )
        with self.unit_of_work() as uow:
            if uow.users.exists_by_email(email):
                raise ConflictError("Email already exists")
            uow.users.save(user, self.clock())
        logger.info(f"User registered: {user.id} ({user.role.value})")
        return user

    def register(self, name: str, email: str, password: str) -> User:
        name, email, password = self._validated_identity(name, email, password)
        return self._create_user(name, email, password, RoleName.MEMBER)

    def register_librarian(self, name: str, email: str, password: str, librarian_id: str) -> User:
        name, email, password = self._validated_identity(name, email, password)
        librarian_id = TextValidator.require(librarian_id, "Librarian ID is required")
        if self.exists_by_email(email):
            raise ConflictError("Email already exists")
        if not self.verifier.verify(librarian_id):
            raise ConflictError("Librarian verification failed. Please check your librarian ID.")
        return self._create_user(
            name, email, password, RoleName.LIBRARIAN, librarian_id=librarian_id, is_verified=True
        )

    def create_admin(self, name: str, email: str, password: str) -> User:
        name, email, password = self._validated_identity(name, email, password)
        return self._create_user(name, email, password, RoleName.ADMIN, is_verified=True)

    def authenticate(self, email: str, password: str) -> User:
        with self.unit_of_work(read_only=True) as uow:
            user = uow.users.find_by_email(email or "")
        if user is None or not security.verify_password(password, user.password_hash):
            logger.info("Authentication failed")
            raise AuthenticationError("Invalid email or password")
        if user.role == RoleName.LIBRARIAN and not user.is_verified:
            raise ForbiddenError("Librarian account is not verified")
        return user

    def login(self, email: str, password: str) -> Tuple[str, User]:
        user = self.authenticate(email, password)
        token = security.create_access_token(user)
        logger.info(f"User logged in: {user.id}")
        return token, user

    def get_user_from_token(self, token: str) -> User:
        payload = security.decode_access_token(token)
        with self.unit_of_work(read_only=True) as uow:
            user = uow.users.find_by_id(int(payload["sub"]))
        if user is None:
            raise AuthenticationError("Invalid or expired token")
        # Doğrulaması geri alınan kütüphanecinin eski belirteci de geçersizdir
        if user.role == RoleName.LIBRARIAN and not user.is_verified:
            raise ForbiddenError("Librarian account is not verified")
        return user

    def find_by_id(self, user_id: int) -> User:
        with self.unit_of_work(read_only=True) as uow:
            user = uow.users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def find_by_email(self, email: str) -> User:
        with self.unit_of_work(read_only=True) as uow:
            user = uow.users.find_by_email(email or "")
        if user is None:
            raise NotFoundError("User not found")
        return user

    def exists_by_email(self, email: str) -> bool:
        if TextValidator.is_blank(email):
            return False
        with self.unit_of_work(read_only=True) as uow:
            return uow.users.exists_by_email(email)

    def find_by_role(self, role: RoleName) -> List[User]:
        with self.unit_of_work(read_only=True) as uow:
            return uow.users.find_by_role(role)

    def count_by_role(self, role: RoleName) -> int:
        with self.unit_of_work(read_only=True) as uow:
            return uow.users.count_by_role(role)

    def update_verification_status(self, user_id: int, is_verified: bool) -> User:
        with self.unit_of_work() as uow:
            user = uow.users.find_by_id(user_id)
            if user is None:
                raise NotFoundError("User not found")
            user.is_verified = bool(is_verified)
            uow.users.save(user, self.clock())
        logger.info(f"User {user_id} verification set to {user.is_verified}")
        return user

    def update_user(
        self,
        user_id: int,
        name: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
    ) -> User:
        """Ad, e-posta ve parolayı kısmen günceller."""
        with self.unit_of_work() as uow:
            user = uow.users.find_by_id(user_id)
            if user is None:
                raise NotFoundError("User not found")
            user.name = TextValidator.optional(name) or user.name
            new_email = TextValidator.optional(email)
            if new_email:
                if not EmailValidator.is_valid_email(new_email):
                    raise ValidationError("Invalid email address")
                new_email = EmailValidator.normalize(new_email)
                if new_email != user.email and uow.users.exists_by_email(new_email):
                    raise ConflictError("Email already exists")
                user.email = new_email
            if password:
                user.password_hash = security.hash_password(PasswordValidator.validate(password))
            uow.users.save(user, self.clock())
        logger.info(f"User updated: {user_id}")
        return user
