"""Sign-in state, the mirrored user profile, and role capabilities."""
import enum
import logging
from dataclasses import dataclass

from flask import session as http_session
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from errors import AuthError, NetworkError, ServiceError, ValidationError, failure
from models import Account
from validators import validate_national_id, validate_phone

log = logging.getLogger(__name__)


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"
    OWNER = "owner"

    @classmethod
    def parse(cls, value):
        try:
            return cls(value)
        except ValueError:
            return cls.USER


@dataclass(frozen=True)
class Capabilities:
    is_admin: bool
    can_manage_users: bool
    can_promote_owner: bool


def capabilities_for(role):
    role = Role.parse(role)
    return Capabilities(
        is_admin=role in (Role.ADMIN, Role.OWNER),
        can_manage_users=role in (Role.ADMIN, Role.OWNER),
        can_promote_owner=role is Role.OWNER,
    )


@dataclass(frozen=True)
class Session:
    id: str
    email: str
    email_verified: bool = False
    display_name: str = ""


def _session_for(account):
    return Session(account.id, account.email, account.email_verified, account.display_name or "")


class LocalAuthProvider:
    """Password accounts kept in the app's own database.

    The signed-in account id lives in the Flask session cookie. Verification
    and reset links carry itsdangerous tokens signed with the app secret.
    """

    SESSION_KEY = "user_id"
    VERIFY_SALT = "verify-email"
    RESET_SALT = "reset-password"

    def __init__(self, db, mailer, secret_key, base_url, verify_max_age=3 * 24 * 3600,
                 reset_max_age=3600):
        self.db = db
        self.mailer = mailer
        self.base_url = base_url.rstrip("/")
        self.serializer = URLSafeTimedSerializer(secret_key)
        self.verify_max_age = verify_max_age
        self.reset_max_age = reset_max_age
        self._listeners = []

    def on_session_change(self, callback):
        """Call ``callback(session_or_None)`` on every sign-in and sign-out."""
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback)

    def _notify(self, session):
        for callback in list(self._listeners):
            callback(session)

    def _commit(self):
        try:
            self.db.session.commit()
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            log.exception("Auth store write failed")
            raise NetworkError("Authentication service unavailable") from exc

    def _account_by_email(self, email):
        if not isinstance(email, str):
            return None
        return Account.query.filter_by(email=email.strip().lower()).first()

    def sign_up(self, email, password, display_name=""):
        if self._account_by_email(email):
            raise AuthError("Email already registered. Please use a different email.")
        account = Account(
            email=email.strip().lower(),
            password_hash=generate_password_hash(password),
            display_name=display_name,
        )
        self.db.session.add(account)
        self._commit()
        http_session[self.SESSION_KEY] = account.id
        session = _session_for(account)
        self._notify(session)
        return session

    def sign_in(self, email, password):
        account = self._account_by_email(email)
        if not account or not check_password_hash(account.password_hash, password):
            raise AuthError("invalid credentials")
        http_session[self.SESSION_KEY] = account.id
        session = _session_for(account)
        self._notify(session)
        return session

    def sign_out(self):
        http_session.pop(self.SESSION_KEY, None)
        self._notify(None)

    def current_session(self):
        account_id = http_session.get(self.SESSION_KEY)
        if not account_id:
            return None
        account = self.db.session.get(Account, account_id)
        return _session_for(account) if account else None

    def delete_account(self, account_id):
        """Remove an account and end its session, if it is the signed-in one."""
        if http_session.get(self.SESSION_KEY) == account_id:
            self.sign_out()
        account = self.db.session.get(Account, account_id)
        if account is not None:
            self.db.session.delete(account)
            self._commit()

    def update_display_name(self, account_id, display_name):
        account = self.db.session.get(Account, account_id)
        if account:
            account.display_name = display_name
            self._commit()

    def send_verification_email(self, session):
        token = self.serializer.dumps(session.id, salt=self.VERIFY_SALT)
        body = (
            f"Hi {session.display_name or session.email},\n\n"
            f"Confirm your e-mail address by opening this link:\n"
            f"{self.base_url}/verify/{token}\n"
        )
        return self.mailer.send(session.email, "Verify your e-mail address", body)

    def _load_token(self, token, salt, max_age):
        try:
            return self.serializer.loads(token, salt=salt, max_age=max_age)
        except SignatureExpired as exc:
            raise AuthError("This link has expired") from exc
        except BadSignature as exc:
            raise AuthError("This link is invalid") from exc

    def confirm_email(self, token):
        account = self.db.session.get(Account, self._load_token(token, self.VERIFY_SALT, self.verify_max_age))
        if account is None:
            raise AuthError("This link is invalid")
        account.email_verified = True
        self._commit()
        return _session_for(account)

    def send_password_reset(self, email):
        account = self._account_by_email(email)
        if account is None:
            log.info("Password reset requested for unknown address")
            return False
        token = self.serializer.dumps(account.id, salt=self.RESET_SALT)
        body = f"Reset your password with this link:\n{self.base_url}/password/reset/{token}\n"
        return self.mailer.send(account.email, "Reset your password", body)

    def reset_password(self, token, new_password):
        account = self.db.session.get(Account, self._load_token(token, self.RESET_SALT, self.reset_max_age))
        if account is None:
            raise AuthError("This link is invalid")
        account.password_hash = generate_password_hash(new_password)
        self._commit()


class AccountService:
    """Keeps the ``users`` profile in step with the auth provider's session."""

    PROFILE_FIELDS = ("display_name", "phone")

    def __init__(self, auth, store):
        self.auth = auth
        self.store = store
        auth.on_session_change(self._on_session_change)

    def _on_session_change(self, session):
        if session is None:
            log.info("Auth state changed: signed out")
            return
        log.info("Auth state changed: %s", session.email)
        self._sync_verification(session)

    def _sync_verification(self, session):
        profile = self.store.get("users", session.id)
        if profile and session.email_verified and not profile["email_verified"]:
            self.store.update("users", session.id, {"email_verified": True})
            profile = self.store.get("users", session.id)
        return profile

    def _signed_in(self, profile):
        return {
            "success": True,
            "user": profile,
            "capabilities": vars(capabilities_for(profile["role"])) if profile else None,
        }

    def register(self, email, password, full_name="", national_id=None):
        try:
            if national_id and not validate_national_id(national_id):
                raise ValidationError("National ID must be 12 digits")
            session = self.auth.sign_up(email, password, display_name=full_name)
        except ServiceError as exc:
            log.warning("Registration failed for %s: %s", email, exc)
            return failure(exc)

        try:
            self.store.create("users", {
                "id": session.id,
                "email": session.email,
                "display_name": full_name or "",
                "role": Role.USER.value,
                "document_count": 0,
                "email_verified": session.email_verified,
                "national_id": "".join(national_id.split()) if national_id else None,
                "provider": "email",
                "is_active": True,
            })
        except ServiceError as exc:
            log.error("Profile for %s not created, removing account: %s", session.id, exc)
            self._discard_account(session.id)
            return failure(exc)

        sent = self.auth.send_verification_email(session)
        if not sent:
            log.warning("Account %s created but verification email was not sent", session.id)
        result = self._signed_in(self.store.get("users", session.id))
        result["verification_sent"] = sent
        return result

    def _discard_account(self, account_id):
        try:
            self.auth.delete_account(account_id)
        except ServiceError:
            log.exception("Could not remove account %s after failed registration", account_id)

    def login(self, email, password):
        try:
            session = self.auth.sign_in(email, password)
            profile = self.store.get("users", session.id)
        except ServiceError as exc:
            return failure(exc)
        return self._signed_in(profile)

    def logout(self):
        self.auth.sign_out()
        return {"success": True, "message": "Logged out successfully"}

    def current_profile(self):
        session = self.auth.current_session()
        if session is None:
            return None
        return self.store.get("users", session.id)

    def refresh_user(self):
        """Re-read the session and copy a newly verified e-mail into the profile."""
        session = self.auth.current_session()
        if session is None:
            return failure(AuthError("Not signed in"))
        try:
            profile = self._sync_verification(session)
        except ServiceError as exc:
            return failure(exc)
        return self._signed_in(profile)

    def confirm_email(self, token):
        try:
            session = self.auth.confirm_email(token)
            self._sync_verification(session)
        except ServiceError as exc:
            return failure(exc)
        return {"success": True, "message": "Email verified"}

    def resend_verification(self):
        session = self.auth.current_session()
        if session is None:
            return failure(AuthError("Not signed in"))
        return {"success": True, "verification_sent": self.auth.send_verification_email(session)}

    def forgot_password(self, email):
        self.auth.send_password_reset(email)
        # same answer whether or not the address has an account
        return {"success": True, "message": "If the address is registered, a reset link was sent"}

    def reset_password(self, token, new_password):
        try:
            self.auth.reset_password(token, new_password)
        except ServiceError as exc:
            return failure(exc)
        return {"success": True, "message": "Password updated"}

    def update_profile(self, uid, data):
        patch = {k: v for k, v in data.items() if k in self.PROFILE_FIELDS}
        try:
            if not patch:
                raise ValidationError("Nothing to update")
            if not isinstance(patch.get("display_name", ""), str):
                raise ValidationError("Display name must be a string")
            if patch.get("phone") and not validate_phone(patch["phone"]):
                raise ValidationError("Invalid phone number")
            self.store.update("users", uid, patch)
            if "display_name" in patch:
                self.auth.update_display_name(uid, patch["display_name"])
        except ServiceError as exc:
            return failure(exc)
        return {"success": True, "user": self.store.get("users", uid)}
