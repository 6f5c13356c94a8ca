"""User domain models."""
from dataclasses import dataclass
from typing import Optional


@dataclass
class UserProfile:
    """Profile fields used for recipient resolution and display names."""
    id: str
    community_id: Optional[str] = None
    full_name: Optional[str] = None
    display_name: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    is_admin: bool = False

    @property
    def best_name(self) -> Optional[str]:
        """First non-blank of full name, display name, username."""
        for value in (self.full_name, self.display_name, self.username):
            if value and value.strip():
                return value.strip()
        return None


@dataclass
class IdentityRecord:
    """Identity-provider account (auth), used as the last name source before the id."""
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None


@dataclass
class AuthenticatedUser:
    """Caller of the HTTP API, from a verified ID token."""
    uid: str
    email: Optional[str] = None
    is_admin: bool = False
