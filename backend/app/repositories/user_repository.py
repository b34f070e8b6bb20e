from uuid import UUID

from sqlalchemy.orm import Session

from app.models.user import User
from app.schemas.user import UserCreate


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: UUID) -> User | None:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_customer_level(self, user_id: UUID) -> str | None:
        """Return the user's customer level, or None if the user does not exist."""
        row = self.db.query(User.customer_level).filter(User.id == user_id).first()
        return row[0] if row else None

    def create(self, data: UserCreate) -> User:
        user = User(
            email=data.email,
            full_name=data.full_name,
            customer_level=data.customer_level.value,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user
