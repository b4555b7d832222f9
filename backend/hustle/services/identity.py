# backend/hustle/services/identity.py
"""
Identity collaborator.

Tokens are issued by the upstream identity provider; locally we only need to
turn a user id into an email address for the payment gateway.
"""

from typing import Optional

from sqlalchemy.orm import Session

from ..repositories.factory import RepositoryFactory
from ..repositories.profile_repository import ProfileRepository


class IdentityProvider:
    """Resolves user attributes from the profile store."""

    def __init__(self, db: Session, profile_repository: Optional[ProfileRepository] = None):
        self.profile_repository = profile_repository or RepositoryFactory.create_profile_repository(db)

    def get_user_email(self, user_id: str, token_email: Optional[str] = None) -> Optional[str]:
        """Email for ``user_id``, preferring the one carried by the request's token."""
        if token_email:
            return token_email
        return self.profile_repository.get_email(user_id)
