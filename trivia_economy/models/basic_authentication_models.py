from pydantic import BaseModel


class AdminUserModel(BaseModel):
    """Admin account allowed to call the /admin endpoints."""
    username: str
    hash_password: str
    salt: str

    class Config:
        from_attributes = True
