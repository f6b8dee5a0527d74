from __future__ import annotations

from ..extensions import db
from ..permissions import AccessLevel, MembershipRole, Module
from farmpro.time_utils import to_utc_z


class Farm(db.Model):
    """
    Tenant root: every farm is an isolation boundary.

    A farm has one creator and at most one designated admin (admin_id).
    The admin shortcut in the access controller only applies when the
    admin's global role is FARM_ADMIN.
    """
    __tablename__ = "farms"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(255), nullable=False)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    admin_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    creator = db.relationship("User", foreign_keys=[created_by])
    admin = db.relationship("User", foreign_keys=[admin_id])

    def __repr__(self) -> str:
        return f"<Farm id={self.id} name={self.name!r} admin_id={self.admin_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "created_by": self.created_by,
            "admin_id": self.admin_id,
            "created_at": to_utc_z(self.created_at),
        }


class UserFarm(db.Model):
    """
    Farm membership.

    Removing a membership must also remove the user's UserPermission rows
    for that farm (see farm_service.remove_user_from_farm).
    """
    __tablename__ = "user_farms"
    __table_args__ = (
        db.UniqueConstraint("user_id", "farm_id", name="uq_user_farms"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    farm_id = db.Column(db.Integer, db.ForeignKey("farms.id"), nullable=False, index=True)
    role = db.Column(db.Enum(MembershipRole, native_enum=False, length=32), nullable=False, default=MembershipRole.MEMBER)

    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("farm_memberships", lazy=True))
    farm = db.relationship("Farm", backref=db.backref("memberships", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "farm_id": self.farm_id,
            "role": self.role.value,
            "assigned_at": to_utc_z(self.assigned_at),
        }


class UserPermission(db.Model):
    """
    Fine-grained grant: (user, farm, module) -> access level.

    At most one row per (user_id, farm_id, module); writes are upserts.
    """
    __tablename__ = "user_permissions"
    __table_args__ = (
        db.UniqueConstraint("user_id", "farm_id", "module", name="uq_user_permissions"),
        db.Index("ix_user_permissions_user_farm", "user_id", "farm_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    farm_id = db.Column(db.Integer, db.ForeignKey("farms.id"), nullable=False, index=True)
    module = db.Column(db.Enum(Module, native_enum=False, length=32), nullable=False)
    access_level = db.Column(db.Enum(AccessLevel, native_enum=False, length=16), nullable=False)

    granted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", foreign_keys=[user_id])
    granted_by = db.relationship("User", foreign_keys=[granted_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "farm_id": self.farm_id,
            "module": self.module.value,
            "access_level": self.access_level.value,
            "granted_by_user_id": self.granted_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
        }
