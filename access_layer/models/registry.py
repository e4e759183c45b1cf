"""
Entity descriptors for the resources exposed over the API.

Field names match mapped attribute names; only declared fields can be
filtered, sorted or rendered.
"""

from __future__ import annotations

from access_layer.core.schema import EntitySchema, FieldKind, FieldSpec, RelationshipSpec, SchemaRegistry
from access_layer.models.content import Document, Project
from access_layer.models.security import Role, User, Workspace


WORKSPACES = EntitySchema(
    type_name="workspaces",
    model=Workspace,
    fields=(
        FieldSpec("id", FieldKind.STRING),
        FieldSpec("name", FieldKind.STRING),
        FieldSpec("domain", FieldKind.STRING),
    ),
    tenant="id",
)

ROLES = EntitySchema(
    type_name="roles",
    model=Role,
    fields=(
        FieldSpec("id", FieldKind.INTEGER),
        FieldSpec("name", FieldKind.STRING),
        FieldSpec("description", FieldKind.STRING, filterable=False, sortable=False),
    ),
)

USERS = EntitySchema(
    type_name="users",
    model=User,
    fields=(
        FieldSpec("id", FieldKind.INTEGER),
        FieldSpec("username", FieldKind.STRING),
        FieldSpec("email", FieldKind.STRING),
        FieldSpec("workspace_id", FieldKind.STRING),
        FieldSpec("department_id", FieldKind.INTEGER),
        FieldSpec("is_active", FieldKind.BOOLEAN),
        FieldSpec("created_at", FieldKind.DATETIME),
    ),
    relationship_specs=(
        RelationshipSpec("workspace", "workspaces"),
        RelationshipSpec("roles", "roles", many=True),
    ),
    tenant="workspace_id",
)

PROJECTS = EntitySchema(
    type_name="projects",
    model=Project,
    fields=(
        FieldSpec("id", FieldKind.INTEGER),
        FieldSpec("workspace_id", FieldKind.STRING),
        FieldSpec("name", FieldKind.STRING),
        FieldSpec("owner_id", FieldKind.INTEGER),
        FieldSpec("team_id", FieldKind.INTEGER),
        FieldSpec("status", FieldKind.STRING),
        FieldSpec("created_at", FieldKind.DATETIME),
    ),
    relationship_specs=(
        RelationshipSpec("workspace", "workspaces"),
        RelationshipSpec("owner", "users"),
        RelationshipSpec("documents", "documents", many=True),
    ),
    tenant="workspace_id",
    owner="owner_id",
)

DOCUMENTS = EntitySchema(
    type_name="documents",
    model=Document,
    fields=(
        FieldSpec("id", FieldKind.INTEGER),
        FieldSpec("workspace_id", FieldKind.STRING),
        FieldSpec("project_id", FieldKind.INTEGER),
        FieldSpec("title", FieldKind.STRING),
        FieldSpec("body", FieldKind.STRING, filterable=False, sortable=False),
        FieldSpec("status", FieldKind.STRING),
        FieldSpec("is_public", FieldKind.BOOLEAN),
        FieldSpec("owner_id", FieldKind.INTEGER),
        FieldSpec("created_by", FieldKind.INTEGER),
        FieldSpec("team_id", FieldKind.INTEGER),
        FieldSpec("department_id", FieldKind.INTEGER),
        FieldSpec("is_active", FieldKind.BOOLEAN),
        FieldSpec("created_at", FieldKind.DATETIME),
        FieldSpec("deleted_at", FieldKind.DATETIME),
    ),
    relationship_specs=(
        RelationshipSpec("project", "projects"),
        RelationshipSpec("owner", "users"),
    ),
    tenant="workspace_id",
    owner="owner_id",
    department="department_id",
)


REGISTRY = SchemaRegistry([WORKSPACES, ROLES, USERS, PROJECTS, DOCUMENTS])
