import hashlib
import logging
import secrets
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trivia_economy.models.schemas import UserTable
from trivia_economy.models.basic_authentication_models import AdminUserModel
from trivia_economy.load_secrets import pepper_data


def hash_password(password: str, salt: str) -> str:
    return hashlib.sha256((password + salt + pepper_data).encode()).hexdigest()


class CreateAuthentication:
    @staticmethod
    async def create_user_data(username: str, password: str, session: AsyncSession) -> bool:
        """Create an admin user

        Args:
            username (str): Login name
            password (str): Plain password, stored as sha256(password + salt + pepper)
        """
        salt = secrets.token_hex(8)
        async with session:
            try:
                session.add(UserTable(username=username, hash_password=hash_password(password, salt), salt=salt))
                await session.commit()
                return True
            except IntegrityError as e:
                await session.rollback()
                logging.warning(f"User {username} already exists: {e.orig}")
                return False


class ReadAuthentication:
    @staticmethod
    async def read_user_data(username: str, session: AsyncSession) -> AdminUserModel | None:
        """Read user data to get salt and password hash

        Args:
            username (str): username of the admin

        Returns:
            AdminUserModel: username, password hash and salt
        """
        stmt = select(UserTable).where(UserTable.username == username)
        result = await session.execute(stmt)
        result = result.scalars().first()
        if result is None:
            logging.warning(f"User not found: {username}")
            return None
        return AdminUserModel.model_validate(result)
