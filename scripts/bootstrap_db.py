"""Create database schema and seed demo users for local matchmaking."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from jose import jwt

from duocall.core.config import settings
from duocall.db.session import SessionLocal, engine
from duocall.models.base import Base
from duocall.models.user import Role, Subscription, User

USERS = [
	{
		"id": "user-amir",
		"email": "amir@example.com",
		"first_name": "Amir",
		"last_name": "Khan",
		"role": Role.MALE.value,
		"is_verified": True,
		"subscription_type": Subscription.PREMIUM.value,
	},
	{
		"id": "user-sara",
		"email": "sara@example.com",
		"first_name": "Sara",
		"last_name": "Ali",
		"role": Role.FEMALE.value,
		"is_verified": True,
		"subscription_type": Subscription.FREE.value,
	},
	{
		"id": "user-omar",
		"email": "omar@example.com",
		"first_name": "Omar",
		"last_name": None,
		"role": Role.MALE.value,
		"is_verified": False,
		"subscription_type": Subscription.FREE.value,
	},
	{
		"id": "user-admin",
		"email": "admin@example.com",
		"first_name": "Ops",
		"last_name": None,
		"role": "admin",
		"is_verified": True,
		"subscription_type": Subscription.FREE.value,
	},
]

DEV_TOKEN_TTL = timedelta(days=7)


async def create_schema() -> None:
	async with engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)


async def seed_users() -> None:
	"""Insert or update demo identities; usage counters are left untouched."""

	async with SessionLocal() as session:
		async with session.begin():
			for user_data in USERS:
				user = await session.get(User, user_data["id"])
				if user is None:
					user = User(
						id=user_data["id"],
						email=user_data["email"],
						first_name=user_data["first_name"],
						last_name=user_data["last_name"],
						role=user_data["role"],
						is_verified=user_data["is_verified"],
						subscription_type=user_data["subscription_type"],
						total_video_seconds=0,
						created_at=datetime.now(timezone.utc),
					)
					session.add(user)
				else:
					user.email = user_data["email"]
					user.first_name = user_data["first_name"]
					user.last_name = user_data["last_name"]
					user.role = user_data["role"]
					user.is_verified = user_data["is_verified"]
					user.subscription_type = user_data["subscription_type"]
					session.add(user)


def dev_token(user_id: str) -> str:
	expires = datetime.now(timezone.utc) + DEV_TOKEN_TTL
	return jwt.encode(
		{"sub": user_id, "exp": expires},
		settings.auth_jwt_secret,
		algorithm=settings.auth_jwt_algorithm,
	)


async def main() -> None:
	await create_schema()
	await seed_users()
	print("Database schema ensured and demo users seeded.")
	for user_data in USERS:
		print(f"{user_data['id']}: Bearer {dev_token(user_data['id'])}")
	await engine.dispose()


if __name__ == "__main__":
	asyncio.run(main())
