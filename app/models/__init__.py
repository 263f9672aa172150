from app.models.database import Base, get_db
from app.models.user import User
from app.models.verification_token import VerificationToken

__all__ = ["Base", "get_db", "User", "VerificationToken"]
