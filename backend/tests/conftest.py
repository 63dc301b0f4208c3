"""
Pytest fixtures for the access tests.

Provides:
- An in-memory SQLite database with foreign keys enforced
- A FastAPI TestClient bound to that database
- Factories for users, sites and memberships
- Session-cookie login for API tests
"""
import itertools

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core import config, security
from app.core.auth import create_session
from app.core.database import Base, enable_sqlite_foreign_keys, get_db
from app.main import app as fastapi_app
from app.models import GlobalRole, Site, SiteMembership, SiteRole, User
from app.services.memberships import build_actor

TEST_PASSWORD = "Secret123!"


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Deterministic settings: no SMTP from config_local, fast bcrypt."""
    monkeypatch.setattr(config, "SMTP_HOST", None)
    monkeypatch.setattr(config, "SMTP_USERNAME", None)
    monkeypatch.setattr(config, "SMTP_PASSWORD", None)
    monkeypatch.setattr(config, "SMTP_FROM_EMAIL", None)
    monkeypatch.setattr(config, "FRONTEND_BASE_URL", "https://infradb.example.com")
    monkeypatch.setattr(config, "INVITATION_EXPIRY_DAYS", 7)
    monkeypatch.setattr(config, "INVITATION_MAX_EXPIRY_DAYS", 30)
    monkeypatch.setattr(security, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    with TestClient(fastapi_app) as test_client:
        yield test_client
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def make_site(db):
    counter = itertools.count(1)

    def _make_site(code=None, name=None):
        n = next(counter)
        site = Site(code=code or f"SITE{n}", name=name or f"Site {n}")
        db.add(site)
        db.commit()
        db.refresh(site)
        return site

    return _make_site


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make_user(email=None, username=None, role=GlobalRole.USER, sites=None, password=TEST_PASSWORD):
        """sites maps Site (or site id) -> SiteRole."""
        n = next(counter)
        user = User(
            email=email or f"user{n}@example.com",
            username=username or f"user{n}",
            hashed_password=security.hash_password(password),
            role=role,
            is_active=True,
        )
        db.add(user)
        db.flush()
        for site, site_role in (sites or {}).items():
            site_id = site.id if isinstance(site, Site) else site
            db.add(SiteMembership(user_id=user.id, site_id=site_id, site_role=site_role))
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def actor_for(db):
    """Build the actor exactly as a request would."""
    def _actor_for(user):
        return build_actor(db, user)

    return _actor_for


@pytest.fixture
def sites(make_site):
    """Two sites: site 1 and site 2."""
    return make_site(code="AMS1", name="Amsterdam"), make_site(code="BER1", name="Berlin")


@pytest.fixture
def global_admin(make_user):
    return make_user(email="root@example.com", username="root", role=GlobalRole.GLOBAL_ADMIN)


@pytest.fixture
def site_admin(make_user, sites):
    """SITE_ADMIN of site 1 only."""
    site1, _ = sites
    return make_user(email="ops@example.com", username="ops", sites={site1: SiteRole.SITE_ADMIN})


@pytest.fixture
def login(client):
    def _login(user):
        client.cookies.set(config.SESSION_COOKIE_NAME, create_session(user.id, user.email))
        return client

    return _login
