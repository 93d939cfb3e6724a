from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z

ROLE_ADMIN = "admin"
ROLE_CUSTOMER = "customer"
ROLES = (ROLE_ADMIN, ROLE_CUSTOMER)


class Profile(db.Model):
    """
    Local record of an account issued by the external identity provider.

    `id` is the provider's opaque user id; credentials never live here.
    Profiles are created only by account_service.create_account, which also
    grants the bootstrap customer role.
    """
    __tablename__ = "profiles"

    id = db.Column(db.String(64), primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    roles = db.relationship("UserRole", backref="profile", lazy=True, cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "roles": sorted(r.role for r in self.roles),
            "created_at": to_utc_z(self.created_at),
        }


class UserRole(db.Model):
    """Role membership; one row per (user, role)."""
    __tablename__ = "user_roles"
    __table_args__ = (
        db.UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
        db.CheckConstraint("role IN ('admin', 'customer')", name="ck_user_roles_role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    role = db.Column(db.String(16), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def snapshot(self) -> dict:
        return {"id": self.id, "user_id": self.user_id, "role": self.role}

    def to_dict(self) -> dict:
        return {**self.snapshot(), "created_at": to_utc_z(self.created_at)}
