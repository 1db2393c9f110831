"""Global fixtures: a fresh SQLite database per test and in-memory collaborators."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from stepflow.api.app import create_app, shutdown, startup
from stepflow.repositories import (
    PipelineRepository,
    SecretReferenceRepository,
    TemplateRepository,
    VariableRepository,
)
from stepflow.services.pipeline.orchestrator import ExecutionOrchestrator
from stepflow.services.pipeline_service import PipelineService
from stepflow.services.templates import TemplateRegistry, TemplateService
from stepflow.services.variables import VariableResolver, VariableService
from stepflow.utils.db_manager import DatabaseManager
from tests.utils import FakeExecutor, FakeVault, InMemoryPipelineSource


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[DatabaseManager]:
    """Database manager bound to a throwaway SQLite file."""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'stepflow-test.db'}")
    await manager.create_db_and_tables_async()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def test_session(database) -> AsyncGenerator[AsyncSession]:
    async with database.async_session_factory() as session:
        yield session


@pytest.fixture
def variable_service(test_session) -> VariableService:
    return VariableService(VariableRepository(test_session), SecretReferenceRepository(test_session))


@pytest.fixture
def pipeline_service(test_session, variable_service) -> PipelineService:
    return PipelineService(PipelineRepository(test_session), variable_service)


@pytest.fixture
def template_service(test_session) -> TemplateService:
    return TemplateService(TemplateRepository(test_session), TemplateRegistry())


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def vault() -> FakeVault:
    return FakeVault({"vault-api-key": "s3cr3t"})


@pytest.fixture
def source() -> InMemoryPipelineSource:
    return InMemoryPipelineSource()


@pytest_asyncio.fixture
async def orchestrator(source, vault, executor) -> AsyncGenerator[ExecutionOrchestrator]:
    orchestrator = ExecutionOrchestrator(
        source, VariableResolver(source, vault), executor, step_timeout=60
    )
    yield orchestrator
    await orchestrator.close()


@pytest_asyncio.fixture
async def app(database, executor, vault):
    """Application wired to the test database and in-memory collaborators."""
    app = create_app(executor=executor, vault=vault, database=database)
    await startup(app)
    yield app
    await shutdown(app)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
