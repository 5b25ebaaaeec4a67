"""Input validation and the static document catalogues.

Everything here is pure and synchronous; views call these before any
store or media round trip.
"""
import math
import re

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NATIONAL_ID_RE = re.compile(r"[0-9]{12}")
PHONE_RE = re.compile(r"^[+]?[0-9\s\-()]{10,}$")
SPECIAL_CHARS = '!@#$%^&*(),.?":{}|<>'

PASSWORD_RULES = [
    (lambda s: len(s) >= 8, "Password must be at least 8 characters long"),
    (lambda s: re.search(r"[A-Z]", s), "Password must contain at least one uppercase letter"),
    (lambda s: re.search(r"[a-z]", s), "Password must contain at least one lowercase letter"),
    (lambda s: re.search(r"[0-9]", s), "Password must contain at least one number"),
    (lambda s: any(c in SPECIAL_CHARS for c in s), "Password must contain at least one special character"),
]

IMAGE_TYPES = ["image/jpeg", "image/png", "image/jpg", "image/webp"]
DOC_TYPES = [
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
]
ALLOWED_FILE_TYPES = {
    "images": IMAGE_TYPES,
    "documents": DOC_TYPES + IMAGE_TYPES,
}
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MiB
MAX_EXPIRY_HOURS = 24 * 365 * 10

CATEGORIES = ["education", "healthcare", "government", "transportation", "others"]

DOCUMENT_TYPES = {
    "education": ["marksheet", "certificate", "degree", "diploma"],
    "healthcare": ["medical_record", "insurance", "prescription", "test_report"],
    "government": ["pan", "aadhaar", "passport", "driving_license", "voter_id"],
    "transportation": ["railway_pass", "vehicle_document", "insurance", "registration"],
    "others": ["other"],
}

FOLDER_STRUCTURE = {
    "education": "education-documents",
    "healthcare": "healthcare-records",
    "government": "government-ids",
    "transportation": "transportation-documents",
    "others": "other-documents",
}


def validate_email(email) -> bool:
    return isinstance(email, str) and EMAIL_RE.match(email) is not None


def validate_password(password):
    """Check every password rule and report all of the ones that fail."""
    password = password or ""
    errors = [message for check, message in PASSWORD_RULES if not check(password)]
    return {"is_valid": not errors, "errors": errors}


def validate_national_id(value) -> bool:
    """12-digit national ID (Aadhaar); embedded whitespace is ignored."""
    if not isinstance(value, str):
        return False
    return NATIONAL_ID_RE.fullmatch(re.sub(r"\s", "", value)) is not None


def validate_phone(phone) -> bool:
    if not phone or not isinstance(phone, str):
        return False
    return PHONE_RE.match(re.sub(r"\s", "", phone)) is not None


def validate_file(file, category="documents"):
    """Check size and MIME type of an upload.

    ``file`` is anything with ``size`` and ``mime_type`` attributes
    (see :class:`media.UploadFile`).
    """
    if file is None:
        return {"is_valid": False, "errors": ["No file selected"]}

    errors = []
    allowed = ALLOWED_FILE_TYPES.get(category, ALLOWED_FILE_TYPES["documents"])
    if file.mime_type not in allowed:
        errors.append(f"File type {file.mime_type} is not allowed")
    if file.size > MAX_FILE_SIZE:
        errors.append("File size must be less than 10MB")
    return {"is_valid": not errors, "errors": errors}


def validate_required(value, field_name):
    if value is None or (isinstance(value, str) and not value.strip()):
        return f"{field_name} is required"
    return None


def validate_document_fields(data):
    """Errors for the user-editable fields of a complete document record."""
    errors = []
    error = validate_required(data.get("title"), "Title")
    if error:
        errors.append(error)
    for field in ("title", "description"):
        if data.get(field) is not None and not isinstance(data[field], str):
            errors.append(f"{field.capitalize()} must be text")

    category = data.get("category")
    if category not in CATEGORIES:
        errors.append(f"Category must be one of: {', '.join(CATEGORIES)}")
        category = None

    document_type = data.get("document_type")
    if document_type and category and document_type not in DOCUMENT_TYPES[category]:
        errors.append(f"Document type {document_type} does not belong to {category}")

    tags = data.get("tags")
    if tags is not None and (not isinstance(tags, list) or not all(isinstance(t, str) for t in tags)):
        errors.append("Tags must be a list of strings")
    return errors


def validate_expiry_hours(value):
    """Return the expiry in hours (``None`` for never) or raise ValueError."""
    if value in (None, ""):
        return None
    hours = float(value)
    if not math.isfinite(hours):
        raise ValueError("Expiry hours must be a finite number")
    if hours < 0:
        raise ValueError("Expiry hours must not be negative")
    if hours > MAX_EXPIRY_HOURS:
        raise ValueError(f"Expiry hours must not exceed {MAX_EXPIRY_HOURS}")
    return hours or None


def sanitize_input(value):
    if not isinstance(value, str):
        value = "" if value is None else str(value)
    return value.strip().replace("<", "").replace(">", "")

