from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from loan_manager.utils.database import Base


class User(Base):
    """Borrowers and admins. Rows are owned by the auth service; we only read them."""

    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    email = Column(String(180), unique=True, nullable=False)

    # admin / user
    role = Column(String(20), nullable=False, server_default="user")

    created_on = Column(DateTime, server_default=func.now())
