import os
import base64
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import formataddr
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from datetime import datetime, timezone

log = logging.getLogger(__name__)

NONCE_SIZE = 12  # 96-bit GCM nonce


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ==========================================================
# ENCRYPTION / DECRYPTION
# ==========================================================
def load_key(key_b64: str) -> bytes:
    """Decode a base64 AES-256 key, rejecting anything that is not 32 bytes."""
    if not key_b64:
        raise RuntimeError("ENCRYPTION_KEY not set in .env; generate a base64-encoded 32-byte key")
    key = base64.b64decode(key_b64)
    if len(key) != 32:
        raise RuntimeError("ENCRYPTION_KEY must decode to 32 bytes")
    return key


def encrypt_bytes(key: bytes, data: bytes) -> bytes:
    """Encrypt with AES-GCM; the nonce is prefixed to the returned ciphertext."""
    nonce = os.urandom(NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, data, None)


def decrypt_bytes(key: bytes, blob: bytes) -> bytes:
    nonce, ciphertext = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
    return AESGCM(key).decrypt(nonce, ciphertext, None)


# ==========================================================
# EMAIL SENDING (UTF-8 SAFE)
# ==========================================================
class Mailer:
    """Sends plain-text UTF-8 mail over SMTP with STARTTLS.

    With no SMTP host configured every send is logged and reported as not
    delivered, which keeps development and tests offline.
    """

    def __init__(self, host=None, port=587, user=None, password=None,
                 from_email=None, from_name="Secure Docs", timeout=20):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_email = from_email or user
        self.from_name = from_name
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(
            host=config.get("SMTP_HOST"),
            port=config.get("SMTP_PORT", 587),
            user=config.get("SMTP_USER"),
            password=config.get("SMTP_PASS"),
            from_email=config.get("FROM_EMAIL"),
            from_name=config.get("FROM_NAME", "Secure Docs"),
        )

    def send(self, to_email, subject, body) -> bool:
        if not self.host:
            log.info("SMTP not configured; skipped mail to %s: %s", to_email, subject)
            return False

        log.debug("Attempting SMTP host=%s user=%s port=%s", self.host, self.user, self.port)
        msg = MIMEMultipart()
        msg["From"] = formataddr((self.from_name, self.from_email))
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain", "utf-8"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                if self.user:
                    server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError):
            log.exception("Email send failed to %s", to_email)
            return False

        log.info("Email sent to %s", to_email)
        return True
