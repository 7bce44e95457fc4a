"""
Role-based permissions.

The permission catalog and default roles are static data. Roles and
users live behind the RoleStore / UserStore protocols so the service can
run against SQLite or an in-memory double in tests.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Protocol
from uuid import uuid4

from .errors import SystemRoleError, UnknownRoleError
from .models import Role, User

logger = logging.getLogger(__name__)

OWNER_ROLE = "owner"

PERMISSION_CATEGORIES = {
    "Dashboard": "Dashboard & Analytics",
    "Jobs": "Job Management",
    "Customers": "Customer Management",
    "Technicians": "Technician Management",
    "Pipeline": "Pipeline & Workflow",
    "Messages": "Communication",
    "Settings": "System Settings",
    "Users": "User Management",
}

# key -> (display name, category, description)
PERMISSIONS = {
    "dashboard.view": ("View Dashboard", "Dashboard", "Access to main dashboard and analytics"),
    "dashboard.analytics": ("View Analytics", "Dashboard", "Access to detailed analytics and reports"),
    "jobs.view": ("View Jobs", "Jobs", "View all jobs in the system"),
    "jobs.create": ("Create Jobs", "Jobs", "Create new jobs and leads"),
    "jobs.edit": ("Edit Jobs", "Jobs", "Modify existing job details"),
    "jobs.delete": ("Delete Jobs", "Jobs", "Remove jobs from the system"),
    "jobs.assign": ("Assign Jobs", "Jobs", "Assign jobs to technicians"),
    "jobs.pricing": ("Manage Pricing", "Jobs", "Set and modify job pricing"),
    "customers.view": ("View Customers", "Customers", "Access customer information"),
    "customers.create": ("Create Customers", "Customers", "Add new customers to the system"),
    "customers.edit": ("Edit Customers", "Customers", "Modify customer information"),
    "customers.delete": ("Delete Customers", "Customers", "Remove customers from the system"),
    "technicians.view": ("View Technicians", "Technicians", "Access technician information"),
    "technicians.create": ("Create Technicians", "Technicians", "Add new technicians"),
    "technicians.edit": ("Edit Technicians", "Technicians", "Modify technician information"),
    "technicians.delete": ("Delete Technicians", "Technicians", "Remove technicians from the system"),
    "technicians.commissions": ("Manage Commissions", "Technicians", "Set and modify commission rates"),
    "pipeline.view": ("View Pipeline", "Pipeline", "Access pipeline and kanban boards"),
    "pipeline.edit": ("Edit Pipeline", "Pipeline", "Modify pipeline stages and job status"),
    "pipeline.configure": ("Configure Pipeline", "Pipeline", "Manage pipeline stages and workflow"),
    "messages.view": ("View Messages", "Messages", "Access messaging system"),
    "messages.send": ("Send Messages", "Messages", "Send messages to team members"),
    "messages.broadcast": ("Broadcast Messages", "Messages", "Send messages to multiple recipients"),
    "settings.view": ("View Settings", "Settings", "Access system settings"),
    "settings.company": ("Company Settings", "Settings", "Modify company information"),
    "settings.forms": ("Form Configuration", "Settings", "Configure intake forms and fields"),
    "settings.pipeline": ("Pipeline Settings", "Settings", "Configure pipeline stages"),
    "settings.notifications": ("Notification Settings", "Settings", "Configure notification preferences"),
    "settings.import": ("Data Import", "Settings", "Import data from CSV files"),
    "settings.permissions": ("Manage Permissions", "Settings", "Configure user roles and permissions"),
    "users.view": ("View Users", "Users", "Access user management"),
    "users.create": ("Create Users", "Users", "Add new users to the system"),
    "users.edit": ("Edit Users", "Users", "Modify user information and roles"),
    "users.delete": ("Delete Users", "Users", "Remove users from the system"),
    "users.permissions": ("Manage User Permissions", "Users", "Assign roles and permissions to users"),
}

DEFAULT_ROLES = [
    Role(
        role_id="role-1",
        name="owner",
        display_name="Business Owner",
        description="Full access to all system features and settings",
        permissions=list(PERMISSIONS),
        is_system_role=True,
    ),
    Role(
        role_id="role-2",
        name="admin",
        display_name="Administrator",
        description="Administrative access with most permissions",
        permissions=[p for p in PERMISSIONS if p != "settings.permissions"],
        is_system_role=True,
    ),
    Role(
        role_id="role-3",
        name="dispatcher",
        display_name="Dispatcher",
        description="Manages jobs, schedules, and customer communications",
        permissions=[
            "dashboard.view",
            "jobs.view", "jobs.create", "jobs.edit", "jobs.assign", "jobs.pricing",
            "customers.view", "customers.create", "customers.edit",
            "technicians.view",
            "pipeline.view", "pipeline.edit",
            "messages.view", "messages.send", "messages.broadcast",
            "settings.view", "settings.notifications",
        ],
        is_system_role=True,
    ),
    Role(
        role_id="role-4",
        name="technician",
        display_name="Technician",
        description="Views assigned jobs and updates job status",
        permissions=[
            "dashboard.view",
            "jobs.view", "jobs.edit",
            "customers.view",
            "pipeline.view", "pipeline.edit",
            "messages.view", "messages.send",
        ],
        is_system_role=True,
    ),
]


class RoleStore(Protocol):
    def list_roles(self) -> list[Role]: ...

    def get_role(self, role_id: str) -> Role | None: ...

    def save_role(self, role: Role) -> Role: ...

    def delete_role(self, role_id: str) -> bool: ...


class UserStore(Protocol):
    def list_users(self) -> list[User]: ...

    def get_user(self, user_id: str) -> User | None: ...

    def save_user(self, user: User) -> User: ...

    def delete_user(self, user_id: str) -> bool: ...


class PermissionService:
    """Role and user management on top of injected stores."""

    def __init__(self, roles: RoleStore, users: UserStore):
        self.roles = roles
        self.users = users

    def bootstrap(self) -> list[Role]:
        """Seed the default roles when the store holds none."""
        if not self.roles.list_roles():
            for role in DEFAULT_ROLES:
                self.roles.save_role(replace(role, permissions=list(role.permissions)))
            logger.info("Seeded %d default roles", len(DEFAULT_ROLES))
        return self.list_roles()

    # -------------------------------------------------------------------------
    # Roles
    # -------------------------------------------------------------------------

    def list_roles(self) -> list[Role]:
        """Roles with user_count filled in."""
        counts: dict[str, int] = {}
        for user in self.users.list_users():
            counts[user.role_id] = counts.get(user.role_id, 0) + 1

        roles = self.roles.list_roles()
        for role in roles:
            role.user_count = counts.get(role.role_id, 0)
        return roles

    def get_role_by_id(self, role_id: str) -> Role | None:
        return self.roles.get_role(role_id)

    def get_role_by_name(self, name: str) -> Role | None:
        for role in self.roles.list_roles():
            if role.name == name:
                return role
        return None

    def create_role(
        self,
        name: str,
        display_name: str = "",
        description: str = "",
        permissions: list[str] | None = None,
    ) -> Role:
        role = Role(
            role_id=f"role-{uuid4().hex}",
            name=name,
            display_name=display_name or name,
            description=description,
            permissions=list(permissions or []),
        )
        return self.roles.save_role(role)

    def update_role(self, role_id: str, updates: dict) -> Role:
        role = self.roles.get_role(role_id)
        if role is None:
            raise UnknownRoleError(role_id)

        for key, value in updates.items():
            if hasattr(role, key) and key != "role_id":
                setattr(role, key, value)
        return self.roles.save_role(role)

    def update_role_permissions(self, role_id: str, permissions: list[str]) -> Role:
        return self.update_role(role_id, {"permissions": list(permissions)})

    def delete_role(self, role_id: str) -> bool:
        """Delete a custom role. System roles are refused."""
        role = self.roles.get_role(role_id)
        if role is None:
            return False
        if role.is_system_role:
            raise SystemRoleError("Cannot delete system roles")
        return self.roles.delete_role(role_id)

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def list_users(self) -> list[User]:
        return self.users.list_users()

    def create_user(
        self, email: str, name: str, role_id: str, is_active: bool = True
    ) -> User:
        role = self.roles.get_role(role_id)
        user = User(
            user_id=f"user-{uuid4().hex}",
            email=email,
            name=name,
            role_id=role_id,
            role_name=role.name if role else "unknown",
            is_active=is_active,
            created_at=datetime.now(),
        )
        return self.users.save_user(user)

    def update_user(self, user_id: str, updates: dict) -> User | None:
        user = self.users.get_user(user_id)
        if user is None:
            return None

        for key, value in updates.items():
            if hasattr(user, key) and key != "user_id":
                setattr(user, key, value)

        role = self.roles.get_role(user.role_id)
        if role:
            user.role_name = role.name
        return self.users.save_user(user)

    def delete_user(self, user_id: str) -> bool:
        return self.users.delete_user(user_id)

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    def has_permission(self, permission: str, role_name: str) -> bool:
        """Whether the named role grants `permission`. Owners always do."""
        if role_name == OWNER_ROLE:
            return True
        role = self.get_role_by_name(role_name)
        return role is not None and permission in role.permissions

    def get_user_permissions(self, role_name: str) -> list[str]:
        role = self.get_role_by_name(role_name)
        return list(role.permissions) if role else []
