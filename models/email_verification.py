from sqlalchemy import Column, Integer, String, DateTime, Boolean, Index, text
from database import Base

PURPOSE_SIGNUP = "signup"
PURPOSE_RESET = "reset"
PURPOSES = (PURPOSE_SIGNUP, PURPOSE_RESET)


class EmailVerification(Base):
    __tablename__ = "email_verifications"

    id = Column(Integer, primary_key=True)
    email = Column(String, nullable=False)  # Stored exactly as submitted, no normalization
    code = Column(String(6), nullable=False)
    purpose = Column(String(16), nullable=False, default=PURPOSE_SIGNUP, server_default=PURPOSE_SIGNUP)
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    verified = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    verified_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_email_verifications_email_code", "email", "code"),
        Index("idx_email_verifications_expires_at", "expires_at"),
        # At most one pending code per email and purpose
        Index(
            "uq_email_verifications_pending",
            "email",
            "purpose",
            unique=True,
            postgresql_where=text("verified = false"),
            sqlite_where=text("verified = 0"),
        ),
    )

    def to_dict(self, include_code=False):
        data = {
            "id": self.id,
            "email": self.email,
            "purpose": self.purpose,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "verified": self.verified,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
        }
        if include_code:
            data["code"] = self.code
        return data

    def __repr__(self):
        return f"<EmailVerification id={self.id} email={self.email} purpose={self.purpose} verified={self.verified}>"
