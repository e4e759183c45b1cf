from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from access_layer.db.base import Base
from access_layer.db.session import SessionLocal, engine
from access_layer.models.content import Document, Project
from access_layer.models.security import AccessGrant, Department, Role, Team, User, Workspace


def init_db() -> None:
    """
    Create tables + seed demo data.

    Small and deterministic, so the access rules can be tried with nothing but
    `Authorization: Bearer <user id>` headers.
    """

    Base.metadata.create_all(bind=engine)

    with SessionLocal() as db:
        if _has_seed_data(db):
            return
        seed_demo_data(db)


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(Workspace.id).limit(1)).first() is not None


def seed_demo_data(db: Session) -> None:
    # Tenants
    acme = Workspace(id="ws-acme", name="Acme", domain="acme.example.com")
    globex = Workspace(id="ws-globex", name="Globex", domain="globex.example.com")
    db.add_all([acme, globex])

    eng = Department(name="Engineering", code="ENG")
    ops = Department(name="Operations", code="OPS")
    db.add_all([eng, ops])
    db.flush()

    platform = Team(workspace_id=acme.id, name="Platform")
    design = Team(workspace_id=acme.id, name="Design")
    db.add_all([platform, design])

    admin = Role(name="admin", description="Full access within the workspace")
    manager = Role(name="manager", description="Sees team documents")
    supervisor = Role(name="supervisor", description="Sees documents created by direct reports")
    viewer = Role(name="viewer", description="Sees published public documents only")
    db.add_all([admin, manager, supervisor, viewer])
    db.flush()

    # Users (bearer token = id, in insertion order)
    alice = User(username="alice_admin", email="alice@acme.example.com", workspace_id=acme.id)
    alice.roles.append(admin)

    mona = User(username="mona_manager", email="mona@acme.example.com", workspace_id=acme.id)
    mona.roles.append(manager)
    mona.teams.append(platform)

    vic = User(username="vic_viewer", email="vic@acme.example.com", workspace_id=acme.id)
    vic.roles.append(viewer)

    gina = User(username="gina_grants", email="gina@acme.example.com", workspace_id=acme.id, grants_only=True)

    ed = User(username="ed_eng", email="ed@acme.example.com", workspace_id=acme.id, department_id=eng.id)

    bob = User(username="bob_globex", email="bob@globex.example.com", workspace_id=globex.id)
    bob.roles.append(admin)

    db.add_all([alice, mona, vic, gina, ed, bob])
    db.flush()

    ed.manager_id = mona.id

    roadmap = Project(workspace_id=acme.id, name="Roadmap", owner_id=mona.id, team_id=platform.id, status="active")
    launch = Project(workspace_id=globex.id, name="Launch", owner_id=bob.id, status="active")
    db.add_all([roadmap, launch])
    db.flush()

    docs = [
        Document(workspace_id=acme.id, project_id=roadmap.id, title="Q1 plan", status="published", is_public=True,
                 owner_id=mona.id, created_by=ed.id, team_id=platform.id, department_id=eng.id),
        Document(workspace_id=acme.id, project_id=roadmap.id, title="Q2 plan", status="draft", is_public=False,
                 owner_id=mona.id, created_by=mona.id, team_id=platform.id, department_id=eng.id),
        Document(workspace_id=acme.id, title="Brand guide", status="published", is_public=True,
                 owner_id=vic.id, created_by=vic.id, team_id=design.id),
        Document(workspace_id=acme.id, title="Runbook", status="published", is_public=False,
                 owner_id=ed.id, created_by=ed.id, department_id=eng.id),
        Document(workspace_id=globex.id, project_id=launch.id, title="Launch brief", status="published",
                 is_public=True, owner_id=bob.id, created_by=bob.id),
    ]
    db.add_all(docs)
    db.flush()

    db.add_all(
        [
            AccessGrant(user_id=gina.id, entity_type="documents", entity_id=str(docs[0].id)),
            AccessGrant(user_id=gina.id, entity_type="documents", entity_id=str(docs[2].id)),
        ]
    )

    db.commit()
