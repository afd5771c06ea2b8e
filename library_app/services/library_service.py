import logging
from datetime import datetime
from typing import Callable, List, Optional

from library_app.exceptions import ConflictError, NotFoundError
from library_app.models import BorrowStatus, CopyStatus, Library, RoleName
from library_app.repositories import UnitOfWork
from library_app.validators import TextValidator

logger = logging.getLogger(__name__)


class LibraryService:
    """Kütüphane (şube) kayıtlarını yönetir."""

    def __init__(
        self,
        unit_of_work: Callable[..., UnitOfWork] = UnitOfWork,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.unit_of_work = unit_of_work
        self.clock = clock

    def create_library(self, name: str, address: str, phone: Optional[str] = None) -> Library:
        name = TextValidator.require(name, "Library name is required")
        address = TextValidator.require(address, "Library address is required")
        with self.unit_of_work() as uow:
            if uow.libraries.exists_by_name(name):
                raise ConflictError("Library name already exists")
            library = uow.libraries.save(
                Library(name=name, address=address, phone=TextValidator.optional(phone)), self.clock()
            )
        logger.info(f"Library created: {library.id} ({library.name})")
        return library

    def find_by_id(self, library_id: int) -> Library:
        with self.unit_of_work(read_only=True) as uow:
            library = uow.libraries.find_by_id(library_id)
        if library is None:
            raise NotFoundError("Library not found")
        return library

    def find_by_name(self, name: str) -> Library:
        with self.unit_of_work(read_only=True) as uow:
            library = uow.libraries.find_by_name(name or "")
        if library is None:
            raise NotFoundError("Library not found")
        return library

    def find_all(self) -> List[Library]:
        with self.unit_of_work(read_only=True) as uow:
            return uow.libraries.find_all()

    def exists_by_name(self, name: str) -> bool:
        if TextValidator.is_blank(name):
            return False
        with self.unit_of_work(read_only=True) as uow:
            return uow.libraries.exists_by_name(name)

    def update_library(
        self,
        library_id: int,
        name: Optional[str] = None,
        address: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Library:
        """Kısmi güncelleme: boş bırakılan alanlar değiştirilmez."""
        with self.unit_of_work() as uow:
            library = uow.libraries.find_by_id(library_id)
            if library is None:
                raise NotFoundError("Library not found")
            new_name = TextValidator.optional(name)
            if new_name and new_name != library.name:
                if uow.libraries.exists_by_name(new_name):
                    raise ConflictError("Library name already exists")
                library.name = new_name
            library.address = TextValidator.optional(address) or library.address
            if phone is not None:
                library.phone = TextValidator.optional(phone)
            uow.libraries.save(library, self.clock())
        logger.info(f"Library updated: {library.id}")
        return library

    def delete_library(self, library_id: int) -> None:
        with self.unit_of_work() as uow:
            if uow.libraries.find_by_id(library_id) is None:
                raise NotFoundError("Library not found")
            if uow.copies.count_by_library(library_id) > 0:
                raise ConflictError("Library still holds book copies")
            uow.libraries.delete(library_id)
        logger.info(f"Library deleted: {library_id}")

    def get_statistics(self) -> dict:
        """Katalog, envanter ve ödünç alma durumuna ait genel sayılar."""
        with self.unit_of_work(read_only=True) as uow:
            return {
                "total_books": uow.books.count(),
                "total_libraries": uow.libraries.count(),
                "total_copies": uow.copies.count(),
                "available_copies": uow.copies.count_by_status(CopyStatus.AVAILABLE),
                "borrowed_copies": uow.copies.count_by_status(CopyStatus.BORROWED),
                "active_loans": uow.borrows.count_by_status(BorrowStatus.BORROWED),
                "members": uow.users.count_by_role(RoleName.MEMBER),
                "librarians": uow.users.count_by_role(RoleName.LIBRARIAN),
                "notifications": uow.notifications.count(),
            }
