import argparse
import asyncio
import secrets
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from trivia_economy.authentication.basic_authentication_crud import (
    CreateAuthentication,
    ReadAuthentication,
    hash_password,
)
from trivia_economy.db import Session, create_tables
from trivia_economy.load_secrets import payment_secret, scheduler_secret
from trivia_economy.models.basic_authentication_models import AdminUserModel

security = HTTPBasic()
create_auth = CreateAuthentication()
read_auth = ReadAuthentication()


def _secret_matches(given: str | None, expected: str) -> bool:
    # An unset secret disables the endpoint instead of accepting an empty header.
    if not expected or not given:
        return False
    return secrets.compare_digest(given.encode(), expected.encode())


class BasicAuthentication:
    def __init__(self):
        pass

    async def check_user_data(
        self, credentials: HTTPBasicCredentials = Depends(security)
    ) -> AdminUserModel:
        """Check the admin's HTTP Basic credentials

        Raises:
            HTTPException: Unknown username
            HTTPException: Wrong password

        Returns:
            AdminUserModel: The authenticated admin
        """
        async with Session() as session:
            user_data = await read_auth.read_user_data(credentials.username, session)
        if user_data is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid username",
                headers={"WWW-Authenticate": "Basic"},
            )

        hashed_password = hash_password(credentials.password, user_data.salt)
        if not secrets.compare_digest(hashed_password, user_data.hash_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid password",
                headers={"WWW-Authenticate": "Basic"},
            )
        return user_data

    async def store_user_data(self, username: str, password: str) -> bool:
        async with Session() as session:
            return await create_auth.create_user_data(username, password, session)

    async def read_user_data(self, username: str) -> AdminUserModel | None:
        async with Session() as session:
            return await read_auth.read_user_data(username, session)


async def check_scheduler_secret(x_scheduler_secret: str | None = Header(default=None)) -> None:
    if not _secret_matches(x_scheduler_secret, scheduler_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid scheduler secret")


async def check_payment_secret(x_payment_secret: str | None = Header(default=None)) -> None:
    if not _secret_matches(x_payment_secret, payment_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid payment secret")


async def current_user_id(x_user_id: str | None = Header(default=None)) -> UUID:
    """User id set by the identity gateway in front of this service."""
    try:
        return UUID(x_user_id)
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing or invalid X-User-Id")


def get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create an admin user for the economy API")
    parser.add_argument("--username", type=str, help="Username", required=True)
    parser.add_argument("--password", type=str, help="Password", required=True)
    return parser


async def main(username: str, password: str):
    await create_tables()
    basic_auth = BasicAuthentication()
    created = await basic_auth.store_user_data(username, password)
    user_data = await basic_auth.read_user_data(username)
    print(("created" if created else "exists"), user_data.username, user_data.hash_password, user_data.salt)


if __name__ == "__main__":
    parser = get_parser()
    args = parser.parse_args()
    asyncio.run(main(args.username, args.password))
