# attendance_engine/models/user.py
from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from attendance_engine.db.base import Base


class Profile(Base):
    """
    Known user account. Only the fields the identity directory needs.
    """

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Profile id={self.id} email={self.email}>"


class UserEmailAlias(Base):
    """
    Secondary email a user may join meetings with.
    """

    __tablename__ = "user_email_aliases"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    alias_email = Column(String(320), nullable=False, index=True)

    user = relationship("Profile", backref="email_aliases")

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "alias_email",
            name="uq_user_email_aliases_user_alias",
        ),
    )
