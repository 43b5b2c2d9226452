from sqlalchemy import Boolean, Column, DateTime, String, true
from sqlalchemy.sql import func
from pacemates.db import Base


class Profile(Base):
    __tablename__ = "profiles"

    # Identifier issued by the auth provider
    id = Column(String, primary_key=True, index=True)

    display_name = Column(String, nullable=True)

    # Hidden runners never show up in anyone else's presence view
    is_visible = Column(Boolean, nullable=False, default=True, server_default=true())

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
