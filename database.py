# database.py
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING

from config import MONGODB_URL, DATABASE_NAME

logger = logging.getLogger(__name__)


class MongoDB:
    client: Optional[AsyncIOMotorClient] = None
    is_connected: bool = False

mongodb = MongoDB()

async def get_database():
    if mongodb.client is None:
        logger.info("🔗 Connecting to MongoDB...")

        try:
            mongodb.client = AsyncIOMotorClient(
                MONGODB_URL,
                serverSelectionTimeoutMS=15000,
                connectTimeoutMS=15000,
                maxPoolSize=10,
                retryWrites=True
            )

            # Test connection
            await mongodb.client.admin.command('ping')
            mongodb.is_connected = True
            logger.info("✅ Successfully connected to MongoDB!")

        except Exception as e:
            logger.error(f"❌ Connection failed: {e}")
            mongodb.is_connected = False

    return mongodb.client[DATABASE_NAME]

async def close_mongo_connection():
    if mongodb.client:
        mongodb.client.close()
        mongodb.client = None
        mongodb.is_connected = False
        logger.info("🔌 MongoDB connection closed")

async def create_indexes():
    db = await get_database()
    if not mongodb.is_connected:
        logger.warning("⚠️  Could not create indexes - no active connection")
        return

    try:
        logger.info("📊 Creating database indexes...")

        # Users
        await db.users.create_index([("email", ASCENDING)], unique=True)
        await db.users.create_index([("username", ASCENDING)], unique=True)
        await db.users.create_index([("role", ASCENDING)])

        # Courses and enrollments
        await db.courses.create_index([("code", ASCENDING)], unique=True)
        await db.courses.create_index([("instructor_id", ASCENDING)])
        await db.enrollments.create_index([("student_id", ASCENDING), ("course_id", ASCENDING)], unique=True)
        await db.enrollments.create_index([("course_id", ASCENDING), ("status", ASCENDING)])

        # Quizzes
        await db.quizzes.create_index([("course_id", ASCENDING)])
        await db.quiz_questions.create_index([("quiz_id", ASCENDING), ("order", ASCENDING)])
        await db.quiz_submissions.create_index([("quiz_id", ASCENDING), ("student_id", ASCENDING)])
        await db.quiz_submissions.create_index([("grade_status", ASCENDING)])
        await db.quiz_attempts.create_index([("submission_id", ASCENDING), ("question_id", ASCENDING)], unique=True)

        # Assignments
        await db.assignments.create_index([("course_id", ASCENDING), ("due_date", DESCENDING)])
        await db.assignment_submissions.create_index([("assignment_id", ASCENDING), ("student_id", ASCENDING)], unique=True)

        # Proctoring
        await db.proctoring_settings.create_index([("quiz_id", ASCENDING)], unique=True)
        await db.proctoring_sessions.create_index([("session_token", ASCENDING)], unique=True)
        await db.proctoring_sessions.create_index([("quiz_id", ASCENDING), ("student_id", ASCENDING)])
        await db.proctoring_events.create_index([("session_id", ASCENDING), ("timestamp", ASCENDING)])

        logger.info("🎉 All database indexes created successfully!")

    except Exception as e:
        logger.warning(f"⚠️  Error in index creation: {e}")
