from skillmatrix.domain.models import User, UserRecord

__all__ = ["User", "UserRecord"]
