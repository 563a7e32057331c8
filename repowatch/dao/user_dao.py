"""UserDAO — users table operations."""

from repowatch.dao.base import BaseDAO
from repowatch.models.user import User


class UserDAO(BaseDAO[User]):
    model = User
