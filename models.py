from flask_sqlalchemy import SQLAlchemy
from datetime import datetime
import uuid

db = SQLAlchemy()


def new_id():
    return uuid.uuid4().hex


class SerializerMixin:
    def to_dict(self):
        data = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            # JSON columns hand back the stored object itself
            data[column.name] = list(value) if isinstance(value, list) else value
        return data


class Account(db.Model):
    """Credentials owned by the local auth provider, never exposed by the store."""
    __tablename__ = "accounts"
    id = db.Column(db.String(32), primary_key=True, default=new_id)
    email = db.Column(db.String(200), unique=True, nullable=False)
    password_hash = db.Column(db.String(300), nullable=False)
    display_name = db.Column(db.String(200), default="")
    email_verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class UserProfile(SerializerMixin, db.Model):
    __tablename__ = "users"
    id = db.Column(db.String(32), primary_key=True)
    email = db.Column(db.String(200), nullable=False)
    display_name = db.Column(db.String(200), default="")
    role = db.Column(db.String(20), nullable=False, default="user")
    document_count = db.Column(db.Integer, nullable=False, default=0)
    email_verified = db.Column(db.Boolean, nullable=False, default=False)
    national_id = db.Column(db.String(12))
    phone = db.Column(db.String(30))
    provider = db.Column(db.String(30), default="email")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False)


class Document(SerializerMixin, db.Model):
    __tablename__ = "documents"
    id = db.Column(db.String(32), primary_key=True)
    owner_id = db.Column(db.String(32), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.String(2000), nullable=False, default="")
    category = db.Column(db.String(40), nullable=False, index=True)
    document_type = db.Column(db.String(40))
    media_url = db.Column(db.String(1000), nullable=False)
    media_id = db.Column(db.String(300), nullable=False)
    file_size = db.Column(db.Integer, nullable=False, default=0)
    mime_type = db.Column(db.String(200))
    resource_type = db.Column(db.String(20))   # media host storage class
    tags = db.Column(db.JSON, nullable=False, default=list)
    share_enabled = db.Column(db.Boolean, nullable=False, default=False)
    public_share_url = db.Column(db.String(1000))
    qr_code_data = db.Column(db.String(1000))
    share_expiry = db.Column(db.DateTime)      # null: never expires
    view_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False)


class AccessLog(SerializerMixin, db.Model):
    __tablename__ = "access_logs"
    id = db.Column(db.String(32), primary_key=True)
    document_id = db.Column(db.String(32), nullable=False, index=True)
    actor_id = db.Column(db.String(32))        # null for anonymous viewers
    action = db.Column(db.String(20), nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False)
    client_context = db.Column(db.String(500))


class ContactMessage(SerializerMixin, db.Model):
    __tablename__ = "contacts"
    id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False)
    subject = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, nullable=False)
    user_id = db.Column(db.String(32))
    created_at = db.Column(db.DateTime, nullable=False)


COLLECTIONS = {
    "users": UserProfile,
    "documents": Document,
    "contacts": ContactMessage,
    "access_logs": AccessLog,
}
