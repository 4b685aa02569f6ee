"""
PyTest Configuration for the Thoth backend
Provides fixtures for testing with a throwaway SQLite database and mocked vendors.
"""
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient
from config.database import Base, get_db
from main import app
import os

# ── SQLite for tests (no external DB required) ──
TEST_DATABASE_URL = os.getenv('TEST_DATABASE_URL', 'sqlite:///./test.db')

# SQLite needs check_same_thread=False for FastAPI's threaded test client
connect_args = {"check_same_thread": False} if "sqlite" in TEST_DATABASE_URL else {}
test_engine = create_engine(TEST_DATABASE_URL, connect_args=connect_args)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@event.listens_for(test_engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    if "sqlite" in TEST_DATABASE_URL:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


WORKSPACE_ID = "test_workspace_id"
INSTANCE_ID = "test_instance_id"
SERVICE_KEY = "sk_internal_test"


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database for each test and drop it afterwards.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def client(db_session):
    """
    FastAPI TestClient with overridden database dependency.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """
    JWT headers for a dashboard user of the test workspace.
    """
    import jwt
    from main import JWT_SECRET, JWT_ALGORITHM

    token = jwt.encode(
        {
            "sub": "test_user_id",
            "workspace_id": WORKSPACE_ID,
        },
        JWT_SECRET,
        algorithm=JWT_ALGORITHM
    )

    return {
        "Authorization": f"Bearer {token}",
        "X-Workspace-Id": WORKSPACE_ID
    }


@pytest.fixture
def service_headers(monkeypatch):
    """Internal service-to-service headers"""
    from config import settings

    monkeypatch.setattr(settings, "INTERNAL_SERVICE_KEY", SERVICE_KEY)
    return {
        "X-Service-Key": SERVICE_KEY,
        "X-Workspace-Id": WORKSPACE_ID
    }


@pytest.fixture
def sample_workspace(db_session):
    """Create a sample workspace for testing."""
    from models import Workspace

    workspace = Workspace(id=WORKSPACE_ID, name="Test Workspace", slug="test-workspace")
    db_session.add(workspace)
    db_session.commit()
    db_session.refresh(workspace)
    return workspace


@pytest.fixture
def sample_instance(db_session, sample_workspace):
    """A connected W-API instance."""
    from instances.models import Instance

    instance = Instance(
        id=INSTANCE_ID,
        workspace_id=sample_workspace.id,
        name="Atendimento",
        provider_type="wapi",
        status="connected",
        phone_number="5511900000000",
        provider_config={"instance_key": "test-instance-key", "api_key": "test-wapi-key"},
    )
    db_session.add(instance)
    db_session.commit()
    db_session.refresh(instance)
    return instance


@pytest.fixture
def sample_contact(db_session, sample_instance):
    """Create a sample contact for testing."""
    from contacts.models import Contact

    contact = Contact(
        workspace_id=sample_instance.workspace_id,
        instance_id=sample_instance.id,
        phone_number="5511999990000",
        name="Maria Silva",
        push_name="Maria",
        tags=[],
        metadata_={},
    )
    db_session.add(contact)
    db_session.commit()
    db_session.refresh(contact)
    return contact


@pytest.fixture
def sample_conversation(db_session, sample_contact):
    """An open conversation answered by the AI."""
    from conversations.models import Conversation

    conversation = Conversation(
        workspace_id=sample_contact.workspace_id,
        instance_id=sample_contact.instance_id,
        contact_id=sample_contact.id,
        status="open",
        attendance_mode="ai",
        unread_count=0,
    )
    db_session.add(conversation)
    db_session.commit()
    db_session.refresh(conversation)
    return conversation


@pytest.fixture
def sample_persona(db_session, sample_workspace):
    from personas.models import Persona

    persona = Persona(
        workspace_id=sample_workspace.id,
        name="Atendente",
        system_prompt="Você é a atendente da Loja Teste.",
        temperature=0.3,
        is_default=True,
    )
    db_session.add(persona)
    db_session.commit()
    db_session.refresh(persona)
    return persona


@pytest.fixture
def mock_provider_send(mocker):
    """Replace the provider client so sends never leave the process."""
    provider = mocker.MagicMock()
    provider.send = mocker.AsyncMock(return_value=("wamid.test123", {"id": "wamid.test123"}))
    mocker.patch("providers.outbound.build_client", return_value=provider)
    return provider


@pytest.fixture
def mock_ai_dispatch(mocker):
    """Capture the AI hand-off scheduled by the webhook pipeline."""
    return mocker.patch("providers.ingestion.dispatch_to_ai")


@pytest.fixture
def mock_bitrix_mirror(mocker):
    return mocker.patch("providers.ingestion.mirror_inbound_message")


# Pytest configuration
def pytest_configure(config):
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "unit: mark test as unit test")
