import os
from dotenv import load_dotenv
load_dotenv()

BASE_DIR = os.path.abspath(os.path.dirname(__file__))
UPLOAD_DIR = os.path.join(BASE_DIR, "uploads")

class Config:
    SECRET_KEY = os.getenv("FLASK_SECRET_KEY", "dev-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL") or f"sqlite:///{os.path.join(BASE_DIR, 'app.db')}"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", UPLOAD_DIR)
    MAX_FILE_SIZE = 10 * 1024 * 1024
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # origin used for share links and e-mail links, e.g. https://docs.example.com
    SHARE_BASE_URL = os.getenv("SHARE_BASE_URL", "http://localhost:8080")

    # AES-256-GCM key in base64 (decode before use); only the local media store needs it
    ENCRYPTION_KEY_B64 = os.getenv("ENCRYPTION_KEY")

    # Cloudinary (optional); the local encrypted store is used when unset
    CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
    CLOUDINARY_UPLOAD_PRESET = os.getenv("CLOUDINARY_UPLOAD_PRESET")
    CLOUDINARY_BASE_FOLDER = os.getenv("CLOUDINARY_BASE_FOLDER", "secure-documents")
    CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
    CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")
    MEDIA_TIMEOUT = float(os.getenv("MEDIA_TIMEOUT") or 30)

    # SMTP (optional)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT") or 587)
    SMTP_USER = os.getenv("SMTP_USER")
    SMTP_PASS = os.getenv("SMTP_PASS")
    FROM_EMAIL = os.getenv("FROM_EMAIL") or os.getenv("SMTP_USER")
    FROM_NAME = os.getenv("FROM_NAME", "Secure Docs")
