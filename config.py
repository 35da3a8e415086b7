# config.py
import os
import sys
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "proctored_lms")

# JWT - override SECRET_KEY in production!
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "120"))

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "*").split(",")
    if origin.strip()
]

# Assignment uploads
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads/assignments")
MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))

# Code execution for coding questions
CODE_EXECUTION_TIMEOUT = float(os.getenv("CODE_EXECUTION_TIMEOUT", "5"))
PYTHON_BINARY = os.getenv("PYTHON_BINARY", sys.executable)
NODE_BINARY = os.getenv("NODE_BINARY", "node")

# Paused webcam streams are forgotten after this long
STREAM_MAX_PAUSE_MINUTES = int(os.getenv("STREAM_MAX_PAUSE_MINUTES", "60"))

DEFAULT_PASSING_SCORE = float(os.getenv("DEFAULT_PASSING_SCORE", "60"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
