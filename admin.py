"""User administration and the contact inbox."""
import logging

from accounts import Role, capabilities_for
from errors import AccessDenied, ServiceError, ValidationError, failure
from validators import sanitize_input, validate_email, validate_required

log = logging.getLogger(__name__)


class AdminService:
    def __init__(self, store):
        self.store = store

    def _require_manager(self, actor):
        if not capabilities_for(actor.get("role")).can_manage_users:
            raise AccessDenied("Admin access required")

    def fetch_all_users(self, actor):
        try:
            self._require_manager(actor)
            users = self.store.query("users", order_by="created_at", direction="desc")
        except ServiceError as exc:
            return failure(exc, users=[])
        return {"success": True, "users": users}

    def fetch_contact_messages(self, actor):
        try:
            self._require_manager(actor)
            messages = self.store.query("contacts", order_by="created_at", direction="desc")
        except ServiceError as exc:
            return failure(exc, messages=[])
        return {"success": True, "messages": messages}

    def update_user_role(self, actor, uid, role):
        try:
            self._require_manager(actor)
            try:
                role = Role(role)
            except ValueError:
                raise ValidationError(f"Unknown role {role!r}") from None
            if role is Role.OWNER and not capabilities_for(actor.get("role")).can_promote_owner:
                raise AccessDenied("Only owners can assign owner role")
            self.store.update("users", uid, {"role": role.value})
        except ServiceError as exc:
            log.warning("Role change of %s by %s refused: %s", uid, actor.get("id"), exc)
            return failure(exc)
        log.info("Role of %s set to %s by %s", uid, role.value, actor.get("id"))
        return {"success": True, "message": f"Role updated to {role.value}"}


class ContactService:
    FIELDS = (("name", "Name"), ("email", "Email"), ("subject", "Subject"), ("message", "Message"))

    def __init__(self, store):
        self.store = store

    def submit_contact_message(self, form, user_id=None):
        errors = [e for e in (validate_required(form.get(k), label) for k, label in self.FIELDS) if e]
        if not errors and not validate_email(sanitize_input(form["email"])):
            errors.append("Please enter a valid email address")
        try:
            if errors:
                raise ValidationError(errors=errors)
            message_id = self.store.create("contacts", {
                "name": sanitize_input(form["name"]),
                "email": sanitize_input(form["email"]),
                "subject": sanitize_input(form["subject"]),
                "message": sanitize_input(form["message"]),
                "user_id": user_id,
            })
        except ServiceError as exc:
            return failure(exc)
        return {"success": True, "id": message_id}
