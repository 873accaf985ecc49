import os

# Set dummy env vars for testing
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["TWILIO_ACCOUNT_SID"] = "AC_TEST"
os.environ["TWILIO_AUTH_TOKEN"] = "AUTH_TEST"
os.environ["TWILIO_PHONE_NUMBER"] = "+14155238886"
os.environ["OPENAI_API_KEY"] = "sk-test"

import re
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from tooltrack.database import Base, get_db, get_session_factory
from tooltrack.main import app
from tooltrack.routers.webhook import get_intent_oracle
# Import models to ensure they are registered with Base.metadata
from tooltrack.models.tenant import Tenant, TenantStatus
from tooltrack.models.user import User
from tooltrack.models.tool import Tool
from tooltrack.models.checkout import ActiveCheckout, HistoryEntry
from tooltrack.models.message import ChatMessage
from tooltrack.schemas.intent import Intent, ParsedIntent
from tooltrack.schemas.tenant import TenantCreate
from tooltrack.schemas.tool import ToolCreate
from tooltrack.services.catalog_service import CatalogService
from tooltrack.services.tenant_service import TenantService

SHARED_NUMBER = "+14155238886"
CREW_NUMBER = "+15550001111"


class ScriptedOracle:
    """Stand-in for the intent service.

    Queued guesses are returned first; otherwise a few keyword rules cover
    the phrasings the tests use.
    """

    RULES = [
        (r"^(yes|yeah|yep|that one)\b", Intent.CONFIRM),
        (r"^(no|nope|cancel)\b", Intent.DENY),
        (r"^(hi|hey|hello)\b", Intent.GREETING),
        (r"^(thanks|thank you|ok|cool)\b", Intent.THANKS),
        (r"\bwho has(?: the)? (?P<tool>.+)", Intent.STATUS),
        (r"\bwhat(?:'s| is) (?:available|free)", Intent.AVAILABILITY),
        (r"\bis(?: the)? (?P<tool>.+?) (?:available|free)", Intent.AVAILABILITY),
        (r"\b(?:need|grab|grabbing|taking|borrow)(?: a| an| the)? (?P<tool>.+)", Intent.CHECKOUT),
        (r"\b(?:return|returning|dropped off)(?: the)? (?P<tool>.+)", Intent.CHECKIN),
    ]

    def __init__(self):
        self.queue = []
        self.requests = []

    def push(self, intent: Intent, **fields):
        self.queue.append(ParsedIntent(intent=intent, **fields))

    async def parse(self, request):
        self.requests.append(request)
        if self.queue:
            return self.queue.pop(0)
        text = request.message.strip().lower()
        for pattern, intent in self.RULES:
            match = re.search(pattern, text)
            if match:
                tool = match.groupdict().get("tool")
                return ParsedIntent(intent=intent, tool=tool.strip(" ?.!") if tool else None)
        return ParsedIntent(intent=Intent.UNKNOWN)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'tooltrack.db'}",
        connect_args={"check_same_thread": False},
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest_asyncio.fixture
async def session_factory(engine):
    return sessionmaker(class_=AsyncSession, autoflush=False, expire_on_commit=False, bind=engine)

@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session

@pytest.fixture
def oracle():
    return ScriptedOracle()

@pytest_asyncio.fixture
async def client(session_factory, oracle):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_intent_oracle] = lambda: oracle

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

async def create_tenant(db, slug="acme", tools=(), **fields) -> Tenant:
    data = TenantCreate(slug=slug, name=fields.pop("name", slug.title() + " Builders"), **fields)
    tenant = await TenantService(db).create_tenant(data)
    catalog = CatalogService(db)
    for tool in tools:
        if isinstance(tool, ToolCreate):
            await catalog.add_tool(tenant.id, tool)
        else:
            await catalog.add_tool(tenant.id, ToolCreate(name=tool))
    return tenant

async def create_member(db, tenant, phone, name, group=None) -> User:
    user = User(tenant_id=tenant.id, phone=phone, name=name, group=group)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user

async def send(client, phone, body, to=CREW_NUMBER):
    response = await client.post("/webhook", data={"From": phone, "To": to, "Body": body})
    assert response.status_code == 200
    return response.text
