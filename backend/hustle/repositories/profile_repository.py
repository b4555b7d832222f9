# backend/hustle/repositories/profile_repository.py
"""Read access to marketplace profiles and services."""

from typing import Optional

from sqlalchemy.orm import Session

from ..models.profile import Profile, Service
from .base_repository import BaseRepository


class ProfileRepository(BaseRepository[Profile]):
    def __init__(self, db: Session):
        super().__init__(db, Profile)

    def get_email(self, user_id: str) -> Optional[str]:
        profile = self.get_by_id(user_id, load_relationships=False)
        return profile.email if profile else None


class ServiceRepository(BaseRepository[Service]):
    def __init__(self, db: Session):
        super().__init__(db, Service)
