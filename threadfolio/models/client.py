from uuid import uuid4

from pydantic import EmailStr
from sqlmodel import Field, SQLModel


def _new_id() -> str:
    return str(uuid4())


class Client(SQLModel, table=True):
    __tablename__ = "clients"
    id: str = Field(default_factory=_new_id, primary_key=True)
    shop_id: str = Field(foreign_key="shops.id", index=True)
    first_name: str
    last_name: str
    email: str | None = None
    phone_number: str | None = None


class ClientCreate(SQLModel):
    first_name: str
    last_name: str
    email: EmailStr | None = None
    phone_number: str | None = None


class ClientSummary(SQLModel):
    """Client fields joined onto appointment read models."""

    id: str
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    phone_number: str | None = None
