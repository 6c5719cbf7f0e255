"""AppUser model - operators who ring up sales."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from shopdesk.database import Base, IdType


class AppUser(Base):
    """AppUser model - shop operators with local authentication."""

    __tablename__ = 'app_user'

    id = Column(IdType, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=True)
    full_name = Column(String(200), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def display_name(self):
        """Name printed on receipts as the cashier."""
        return self.full_name or self.email or 'Cajero'

    def to_dict(self):
        return {'id': self.id, 'email': self.email, 'full_name': self.full_name,
                'display_name': self.display_name}

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}')>"
