"""
Photo Operations Module

Photo gallery and homepage banner.

Gallery photos are uploaded by members and deleted by their uploader or an
admin. The banner is admin-managed: admins upload banner photos (at most
Config.MAX_BANNER_PHOTOS of them) and choose which photos are displayed and
in which order. Gallery photos can be displayed in the banner too. Displayed
photos carry a contiguous 0-based position.
"""

import secrets
from typing import List, Optional, Sequence
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from club.config import Config
from club.database.models import Photo, BannerPhoto
from club.services.photo_storage import validate_photo_key
from club.utils.exceptions import (
    ClubError, ConflictError, DatabaseError, ForbiddenError, InvalidInputError, MemberNotFoundError, NotFoundError
)
from club.utils.logger import setup_logger

logger = setup_logger(__name__)

GALLERY_PREFIX = "gallery-"
BANNER_PREFIX = "banner-"


def storage_name(prefix: str, photo_key: str) -> str:
    """Blob name unique to one upload of photo_key"""
    return f"{prefix}{secrets.token_hex(8)}-{photo_key}"[:200]


class PhotoNotFoundError(NotFoundError):
    def __init__(self, photo_key: str):
        super().__init__(f"Photo '{photo_key}' not found", "❌ Photo not found.")
        self.photo_key = photo_key


class BannerFullError(ConflictError):
    def __init__(self, what: str):
        super().__init__(
            f"Banner {what} limit of {Config.MAX_BANNER_PHOTOS} reached",
            f"❌ Maximum of {Config.MAX_BANNER_PHOTOS} banner photos reached."
        )


class PhotoOperations:
    """Gallery and banner management over a PhotoStorage collaborator"""

    def __init__(self, database, access_control, storage):
        self.db = database
        self.access = access_control
        self.storage = storage
        self.logger = logger

    # ============================================================================
    # Gallery
    # ============================================================================

    async def upload_photo(self, caller: str, photo_key: str, data: bytes, uploader_name: str) -> Photo:
        """
        Upload a gallery photo (members only).

        Raises:
            MemberNotFoundError: Caller is not a member
            ConflictError: A photo with that key already exists
        """
        validate_photo_key(photo_key)
        if not data:
            raise InvalidInputError("Empty photo upload", "❌ The photo is empty.")
        uploader_name = (uploader_name or "").strip() or caller

        if await self.db.get_member_by_identity(caller) is None:
            raise MemberNotFoundError(caller)

        async with self.db.get_session() as session:
            result = await session.execute(select(Photo.id).where(Photo.photo_key == photo_key))
            if result.scalar_one_or_none() is not None:
                raise ConflictError(f"Photo '{photo_key}' already exists", "❌ A photo with that name already exists.")

        storage_ref = await self.storage.put(storage_name(GALLERY_PREFIX, photo_key), data)
        try:
            async with self.db.transaction() as session:
                photo = Photo(
                    photo_key=photo_key,
                    storage_ref=storage_ref,
                    uploader=caller,
                    uploader_name=uploader_name[:100]
                )
                session.add(photo)
                await session.flush()
        except IntegrityError:
            await self.storage.delete(storage_ref)
            raise ConflictError(f"Photo '{photo_key}' already exists", "❌ A photo with that name already exists.")
        except SQLAlchemyError as e:
            await self.storage.delete(storage_ref)
            self.logger.error(f"Failed to save photo {photo_key}: {e}")
            raise DatabaseError("upload_photo", str(e))

        self.logger.info(f"{caller} uploaded photo {photo_key}")
        return photo

    async def delete_photo(self, caller: str, photo_key: str) -> None:
        """Delete a gallery photo (uploader or admin); also drops it from the banner"""
        async with self.db.transaction() as session:
            result = await session.execute(select(Photo).where(Photo.photo_key == photo_key))
            photo = result.scalar_one_or_none()
            if photo is None:
                raise PhotoNotFoundError(photo_key)

            if photo.uploader != caller and not await self.access.is_admin(caller, session):
                self.logger.warning(f"{caller} tried to delete photo {photo_key} of {photo.uploader}")
                raise ForbiddenError(
                    f"{caller} cannot delete photo {photo_key}",
                    "❌ You can only delete your own photos."
                )

            storage_ref = photo.storage_ref
            await session.delete(photo)

            banner = await self._get_banner_row(session, photo_key)
            if banner is not None and not banner.is_upload:
                await session.delete(banner)
                await session.flush()
                await self._renumber(session)

        await self.storage.delete(storage_ref)
        self.logger.info(f"{caller} deleted photo {photo_key}")

    async def get_photo(self, photo_key: str) -> Optional[Photo]:
        async with self.db.get_session() as session:
            result = await session.execute(select(Photo).where(Photo.photo_key == photo_key))
            return result.scalar_one_or_none()

    async def get_photos(self) -> List[Photo]:
        """Gallery photos, newest first"""
        async with self.db.get_session() as session:
            result = await session.execute(select(Photo).order_by(Photo.uploaded_at.desc(), Photo.id.desc()))
            return list(result.scalars().all())

    async def get_photo_data(self, photo_key: str) -> bytes:
        """Bytes of a gallery or uploaded banner photo"""
        async with self.db.get_session() as session:
            result = await session.execute(select(Photo.storage_ref).where(Photo.photo_key == photo_key))
            storage_ref = result.scalar_one_or_none()
            if storage_ref is None:
                result = await session.execute(
                    select(BannerPhoto.storage_ref).where(BannerPhoto.photo_key == photo_key)
                )
                storage_ref = result.scalar_one_or_none()
        if storage_ref is None:
            raise PhotoNotFoundError(photo_key)
        return await self.storage.get(storage_ref)

    # ============================================================================
    # Banner
    # ============================================================================

    async def upload_banner_photo(self, caller: str, photo_key: str, data: bytes, uploader_name: str) -> BannerPhoto:
        """
        Upload a photo for the banner (admin only). It is available for display
        but not displayed until added.

        Raises:
            BannerFullError: Already holding the maximum number of banner uploads
        """
        validate_photo_key(photo_key)
        if not data:
            raise InvalidInputError("Empty photo upload", "❌ The photo is empty.")
        await self.access.require_admin(caller, "upload banner photos")

        async with self.db.get_session() as session:
            if await self._get_banner_row(session, photo_key) is not None:
                raise ConflictError(
                    f"Banner photo '{photo_key}' already exists",
                    "❌ A banner photo with that name already exists."
                )
            if await self._count_uploads(session) >= Config.MAX_BANNER_PHOTOS:
                raise BannerFullError("upload")

        storage_ref = await self.storage.put(storage_name(BANNER_PREFIX, photo_key), data)
        try:
            async with self.db.transaction() as session:
                if await self._count_uploads(session) >= Config.MAX_BANNER_PHOTOS:
                    raise BannerFullError("upload")
                banner = BannerPhoto(
                    photo_key=photo_key,
                    storage_ref=storage_ref,
                    position=None,
                    is_upload=True,
                    uploader=caller,
                    uploader_name=((uploader_name or "").strip() or caller)[:100]
                )
                session.add(banner)
                await session.flush()
        except IntegrityError:
            await self.storage.delete(storage_ref)
            raise ConflictError(
                f"Banner photo '{photo_key}' already exists",
                "❌ A banner photo with that name already exists."
            )
        except ClubError:
            await self.storage.delete(storage_ref)
            raise
        except SQLAlchemyError as e:
            await self.storage.delete(storage_ref)
            self.logger.error(f"Failed to save banner photo {photo_key}: {e}")
            raise DatabaseError("upload_banner_photo", str(e))

        self.logger.info(f"{caller} uploaded banner photo {photo_key}")
        return banner

    async def add_photo_to_banner(self, caller: str, photo_key: str) -> None:
        """Display an uploaded banner photo or a gallery photo at the end of the banner"""
        async with self.db.transaction() as session:
            await self.access.require_admin(caller, "manage the banner", session)

            banner = await self._get_banner_row(session, photo_key)
            if banner is not None and banner.is_displayed:
                raise ConflictError(
                    f"Photo '{photo_key}' is already in the banner",
                    "❌ That photo is already in the banner."
                )

            displayed = await self._count_displayed(session)
            if displayed >= Config.MAX_BANNER_PHOTOS:
                raise BannerFullError("display")

            if banner is None:
                result = await session.execute(select(Photo).where(Photo.photo_key == photo_key))
                photo = result.scalar_one_or_none()
                if photo is None:
                    raise PhotoNotFoundError(photo_key)
                banner = BannerPhoto(
                    photo_key=photo_key,
                    storage_ref=None,
                    is_upload=False,
                    uploader=photo.uploader,
                    uploader_name=photo.uploader_name
                )
                session.add(banner)

            banner.position = displayed

        self.logger.info(f"{caller} added {photo_key} to the banner")

    async def remove_photo_from_banner(self, caller: str, photo_key: str) -> None:
        """Stop displaying a photo; uploaded banner photos stay available"""
        async with self.db.transaction() as session:
            await self.access.require_admin(caller, "manage the banner", session)

            banner = await self._get_banner_row(session, photo_key)
            if banner is None or not banner.is_displayed:
                raise PhotoNotFoundError(photo_key)

            if banner.is_upload:
                banner.position = None
            else:
                await session.delete(banner)
            await session.flush()
            await self._renumber(session)

        self.logger.info(f"{caller} removed {photo_key} from the banner")

    async def delete_banner_photo(self, caller: str, photo_key: str) -> None:
        """Delete an uploaded banner photo from storage and the banner"""
        async with self.db.transaction() as session:
            await self.access.require_admin(caller, "manage the banner", session)

            banner = await self._get_banner_row(session, photo_key)
            if banner is None or not banner.is_upload:
                raise PhotoNotFoundError(photo_key)

            storage_ref = banner.storage_ref
            await session.delete(banner)
            await session.flush()
            await self._renumber(session)

        await self.storage.delete(storage_ref)
        self.logger.info(f"{caller} deleted banner photo {photo_key}")

    async def reorder_banner_photos(self, caller: str, new_order: Sequence[str]) -> None:
        """
        Raises:
            InvalidInputError: new_order is not a permutation of the displayed keys
        """
        async with self.db.transaction() as session:
            await self.access.require_admin(caller, "manage the banner", session)

            displayed = await self._displayed_rows(session)
            by_key = {row.photo_key: row for row in displayed}
            if len(new_order) != len(by_key) or set(new_order) != set(by_key):
                raise InvalidInputError(
                    "Banner order must list every displayed photo exactly once",
                    "❌ The new order must contain exactly the photos currently in the banner."
                )

            for position, photo_key in enumerate(new_order):
                by_key[photo_key].position = position

        self.logger.info(f"{caller} reordered the banner")

    async def get_banner_photos(self) -> List[str]:
        """Keys of displayed photos in banner order"""
        async with self.db.get_session() as session:
            return [row.photo_key for row in await self._displayed_rows(session)]

    async def get_all_banner_photo_keys(self) -> List[str]:
        """Keys of every uploaded banner photo, displayed or not"""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(BannerPhoto.photo_key)
                .where(BannerPhoto.is_upload.is_(True))
                .order_by(BannerPhoto.uploaded_at, BannerPhoto.id)
            )
            return list(result.scalars().all())

    async def get_banner_photo_count(self) -> int:
        """Number of uploaded banner photos, counted against the upload limit"""
        async with self.db.get_session() as session:
            return await self._count_uploads(session)

    async def _get_banner_row(self, session, photo_key: str) -> Optional[BannerPhoto]:
        result = await session.execute(select(BannerPhoto).where(BannerPhoto.photo_key == photo_key))
        return result.scalar_one_or_none()

    async def _displayed_rows(self, session) -> List[BannerPhoto]:
        result = await session.execute(
            select(BannerPhoto).where(BannerPhoto.position.isnot(None)).order_by(BannerPhoto.position)
        )
        return list(result.scalars().all())

    async def _count_displayed(self, session) -> int:
        result = await session.execute(
            select(func.count(BannerPhoto.id)).where(BannerPhoto.position.isnot(None))
        )
        return result.scalar() or 0

    async def _count_uploads(self, session) -> int:
        result = await session.execute(
            select(func.count(BannerPhoto.id)).where(BannerPhoto.is_upload.is_(True))
        )
        return result.scalar() or 0

    async def _renumber(self, session) -> None:
        """Close gaps left by removed photos"""
        for position, row in enumerate(await self._displayed_rows(session)):
            row.position = position
