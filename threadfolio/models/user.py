from sqlmodel import Field, SQLModel


class UserBase(SQLModel):
    email: str | None = Field(default=None, index=True)
    full_name: str | None = None


class User(UserBase, table=True):
    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)
    external_id: str = Field(unique=True, index=True)  # identity provider subject
