# crud/user.py
import logging
from typing import List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from datetime import datetime
import uuid

from models.base import from_document
from models.user import User, RoleEnum
from schemas.user import UserCreate
from utils.security import hash_password

logger = logging.getLogger(__name__)


class UserCRUD:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    @staticmethod
    def _to_user(document: Optional[dict]) -> Optional[User]:
        return User(**from_document(document)) if document else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        return self._to_user(await self.db.users.find_one({"email": email.lower()}))

    async def get_user_by_username(self, username: str) -> Optional[User]:
        return self._to_user(await self.db.users.find_one({"username": username}))

    async def get_user_by_identifier(self, identifier: str) -> Optional[User]:
        user = await self.get_user_by_email(identifier)
        if not user:
            user = await self.get_user_by_username(identifier)
        return user

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        return self._to_user(await self.db.users.find_one({"_id": user_id}))

    async def create_user(self, user_data: UserCreate) -> Optional[User]:
        # Check if user already exists
        if await self.get_user_by_email(user_data.email) or await self.get_user_by_username(user_data.username):
            return None

        # First user becomes admin
        user_count = await self.db.users.count_documents({})
        role = RoleEnum.admin.value if user_count == 0 else user_data.role

        now = datetime.utcnow()
        user_dict = user_data.model_dump(exclude={"password"})
        user_dict.update({
            "_id": str(uuid.uuid4()),
            "email": user_data.email.lower(),
            "password_hash": hash_password(user_data.password),
            "role": role,
            "created_at": now,
            "updated_at": now,
            "last_login": None,
            "is_active": True,
        })

        await self.db.users.insert_one(user_dict)
        logger.info(f"👤 Created {role} account {user_data.username}")
        return self._to_user(user_dict)

    async def update_user(self, user_id: str, update_data: dict) -> Optional[User]:
        update_data["updated_at"] = datetime.utcnow()
        result = await self.db.users.update_one({"_id": user_id}, {"$set": update_data})
        if result.matched_count == 0:
            return None
        return await self.get_user_by_id(user_id)

    async def update_last_login(self, user_id: str) -> None:
        await self.db.users.update_one(
            {"_id": user_id},
            {"$set": {"last_login": datetime.utcnow()}}
        )

    async def get_users(self, role: Optional[RoleEnum] = None) -> List[User]:
        query = {}
        if role:
            query["role"] = role.value if isinstance(role, RoleEnum) else role

        users = await self.db.users.find(query).sort("created_at", 1).to_list(length=1000)
        return [self._to_user(user) for user in users]

    async def get_users_by_ids(self, user_ids: List[str]) -> dict:
        users = await self.db.users.find({"_id": {"$in": list(user_ids)}}).to_list(length=None)
        return {user["_id"]: self._to_user(user) for user in users}
