# campusdesk/models/user.py
from sqlalchemy import Column, String, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from .base import Base


class User(Base):
    """Local account linked to an identity provider user; ``id`` is the provider's user id."""
    __tablename__ = "users"

    person_id = Column(UUID(as_uuid=True), ForeignKey("persons.id"), nullable=True, index=True)
    account_status = Column(String(20), default="active", nullable=False)

    person = relationship("Person")
    roles = relationship("Role", secondary="user_roles", lazy="selectin")


class Role(Base):
    __tablename__ = "roles"

    code = Column(String(50), nullable=False, unique=True)
    name = Column(String(100))

    permissions = relationship("Permission", secondary="role_permissions", lazy="selectin")


class Permission(Base):
    __tablename__ = "permissions"

    code = Column(String(100), nullable=False, unique=True)  # e.g. "students.create"
    description = Column(String(255))


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    role_id = Column(UUID(as_uuid=True), ForeignKey("roles.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="uq_user_role"),
    )


class RolePermission(Base):
    __tablename__ = "role_permissions"

    role_id = Column(UUID(as_uuid=True), ForeignKey("roles.id"), nullable=False, index=True)
    permission_id = Column(UUID(as_uuid=True), ForeignKey("permissions.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
    )
