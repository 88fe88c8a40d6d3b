"""
User storage cho Image API
In-memory store và JSON-file store, cùng một interface
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

from pydantic import BaseModel, Field

from .errors import StorageError, UserAlreadyExistsError

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRecord(BaseModel):
    """Stored user"""
    user_id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="User ID")
    email: str = Field(..., description="Email (lowercase)")
    password_hash: str = Field(..., description="Salted password hash")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class UserStorage(Protocol):
    async def create_user(self, email: str, password_hash: str) -> UserRecord:
        ...

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...


class InMemoryUserStorage:
    """Users chỉ tồn tại trong process"""

    def __init__(self):
        self._users: Dict[str, UserRecord] = {}
        self._lock = asyncio.Lock()

    async def create_user(self, email: str, password_hash: str) -> UserRecord:
        email = normalize_email(email)
        async with self._lock:
            if email in self._users:
                raise UserAlreadyExistsError(email)
            record = UserRecord(email=email, password_hash=password_hash)
            self._users[email] = record
        logger.info(f"Created user: {record.user_id}")
        return record

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        return self._users.get(normalize_email(email))


class FileUserStorage:
    """Users lưu trong một JSON file: {email: record}"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> Dict[str, UserRecord]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            return {email: UserRecord(**data) for email, data in raw.items()}
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read users file {self.path}: {e}")

    def _write(self, users: Dict[str, UserRecord]):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(
                    {email: record.model_dump(mode="json") for email, record in users.items()},
                    f,
                    indent=2,
                )
            tmp_path.replace(self.path)
        except OSError as e:
            raise StorageError(f"Failed to write users file {self.path}: {e}")

    async def create_user(self, email: str, password_hash: str) -> UserRecord:
        email = normalize_email(email)
        loop = asyncio.get_running_loop()
        async with self._lock:
            users = await loop.run_in_executor(None, self._read)
            if email in users:
                raise UserAlreadyExistsError(email)
            record = UserRecord(email=email, password_hash=password_hash)
            users[email] = record
            await loop.run_in_executor(None, self._write, users)
        logger.info(f"Created user: {record.user_id} in {self.path}")
        return record

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        loop = asyncio.get_running_loop()
        users = await loop.run_in_executor(None, self._read)
        return users.get(normalize_email(email))
