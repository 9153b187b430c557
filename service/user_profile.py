"""Local player profile and username rules."""

import logging
import random
import re
import string
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from storage import STORAGE_KEYS, StorageService

logger = logging.getLogger(__name__)

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
USERNAME_PATTERN = re.compile(r"[a-zA-Z0-9 _-]+")

_BASE36 = string.digits + string.ascii_lowercase


class UsernameError(ValueError):
    def __init__(self, errors: List[str]) -> None:
        super().__init__(", ".join(errors))
        self.errors = errors


@dataclass(frozen=True)
class UsernameValidation:
    valid: bool
    errors: List[str]
    trimmed: str


def validate_username(username: str) -> UsernameValidation:
    errors: List[str] = []
    trimmed = username.strip()

    if len(trimmed) < USERNAME_MIN_LENGTH:
        errors.append(f"Username must be at least {USERNAME_MIN_LENGTH} characters")
    if len(trimmed) > USERNAME_MAX_LENGTH:
        errors.append(f"Username must be at most {USERNAME_MAX_LENGTH} characters")
    if not USERNAME_PATTERN.fullmatch(trimmed):
        errors.append("Username can only contain letters, numbers, spaces, underscores, and hyphens")

    return UsernameValidation(valid=not errors, errors=errors, trimmed=trimmed)


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    username: str

    def update_username(self, new_username: str) -> "UserProfile":
        validation = validate_username(new_username)
        if not validation.valid:
            raise UsernameError(validation.errors)
        return UserProfile(self.user_id, validation.trimmed)

    def is_complete(self) -> bool:
        return bool(self.user_id and self.username)

    def to_dict(self) -> Dict[str, str]:
        return {"userId": self.user_id, "username": self.username}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["UserProfile"]:
        if not data:
            return None
        return cls(user_id=data.get("userId") or "", username=data.get("username") or "")


def generate_user_id(rng: Optional[random.Random] = None) -> str:
    rng = rng or random.Random()
    suffix = "".join(rng.choice(_BASE36) for _ in range(9))
    return f"user_{int(time.time() * 1000)}_{suffix}"


class ProfileService:
    def __init__(self, storage: StorageService) -> None:
        self.storage = storage

    def get_user_id(self) -> str:
        user_id = self.storage.get(STORAGE_KEYS["USER_ID"])
        if not user_id:
            user_id = generate_user_id()
            self.storage.set(STORAGE_KEYS["USER_ID"], user_id)
            logger.info("Generated user id %s", user_id)
        return user_id

    def get_profile(self) -> Optional[UserProfile]:
        return UserProfile.from_dict(self.storage.get(STORAGE_KEYS["USER_PROFILE"]))

    def has_profile(self) -> bool:
        profile = self.get_profile()
        return profile is not None and profile.is_complete()

    def save_profile(self, username: str) -> UserProfile:
        """Validate ``username`` and store it under the local user id.

        Raises ``UsernameError`` listing every rule the name breaks.
        """
        validation = validate_username(username)
        if not validation.valid:
            raise UsernameError(validation.errors)

        profile = UserProfile(self.get_user_id(), validation.trimmed)
        self.storage.set(STORAGE_KEYS["USER_PROFILE"], profile.to_dict())
        return profile

    def update_username(self, new_username: str) -> UserProfile:
        profile = self.get_profile()
        if profile is None:
            return self.save_profile(new_username)

        updated = profile.update_username(new_username)
        self.storage.set(STORAGE_KEYS["USER_PROFILE"], updated.to_dict())
        return updated
