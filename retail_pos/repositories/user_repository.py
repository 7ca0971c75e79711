from sqlalchemy.orm import Session
from retail_pos.models.user import User


class UserRepository:
    """Repository for User model operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: int) -> User | None:
        """Get user by internal ID"""
        return self.db.query(User).filter(User.id == user_id).first()

    def get_in_tenant(self, user_id: int, tenant_id: str) -> User | None:
        """Get user only if currently bound to the tenant"""
        return (
            self.db.query(User)
            .filter(User.id == user_id, User.tenant_id == tenant_id)
            .first()
        )

    def list_by_tenant(self, tenant_id: str) -> list[User]:
        return (
            self.db.query(User)
            .filter(User.tenant_id == tenant_id)
            .order_by(User.email)
            .all()
        )
