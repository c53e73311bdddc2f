"""Pytest configuration and fixtures."""

import os

# Must be set before any pizzeria module reads the settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["PAYMENT_PROCESSOR_URL"] = ""
os.environ["METRICS_ENABLED"] = "false"

import httpx
import pytest
import pytest_asyncio

from pizzeria.core import redis_client
from pizzeria.core.security import create_access_token, hash_password, token_claims
from pizzeria.db.database import Base, SessionLocal, engine
from pizzeria.main import app
from pizzeria.models.menu import Category, MenuItem, Modifier, ModifierKind
from pizzeria.models.table import DiningTable, TableStatus
from pizzeria.models.user import User, UserRole

PASSWORD = "pizza-pass"
PASSWORD_HASH = hash_password(PASSWORD)


# ─── In-memory Redis double ────────────────────────────────────────────────────

class FakePubSub:
    def __init__(self, redis: "FakeRedis"):
        self.redis = redis
        self.channels: set[str] = set()

    async def subscribe(self, *channels: str):
        self.channels.update(channels)

    async def unsubscribe(self, *channels: str):
        self.channels.difference_update(channels)

    async def get_message(self, ignore_subscribe_messages: bool = False, timeout: float = 0.0):
        for channel, data in list(self.redis.published):
            if channel in self.channels:
                self.redis.published.remove((channel, data))
                return {"type": "message", "channel": channel, "data": data}
        return None

    async def aclose(self):
        self.channels.clear()


class FakePipeline:
    def __init__(self, redis: "FakeRedis"):
        self.redis = redis
        self.calls: list = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return queue

    async def execute(self):
        results = []
        for name, args, kwargs in self.calls:
            results.append(await getattr(self.redis, name)(*args, **kwargs))
        self.calls = []
        return results


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the middleware and event code."""

    def __init__(self):
        self.values: dict[str, str] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.published: list[tuple[str, str]] = []
        self.fail = False

    def _check(self):
        if self.fail:
            raise ConnectionError("redis unavailable")

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.values.get(key)

    async def set(self, key, value):
        self._check()
        self.values[key] = value
        return True

    async def setex(self, key, ttl, value):
        self._check()
        self.values[key] = value
        return True

    async def delete(self, *keys):
        self._check()
        removed = sum(1 for k in keys if self.values.pop(k, None) is not None)
        return removed + sum(1 for k in keys if self.zsets.pop(k, None) is not None)

    async def publish(self, channel, message):
        self._check()
        self.published.append((channel, message))
        return 1

    def pubsub(self):
        return FakePubSub(self)

    def pipeline(self):
        return FakePipeline(self)

    async def zremrangebyscore(self, key, low, high):
        self._check()
        zset = self.zsets.setdefault(key, {})
        high = float(high)
        stale = [m for m, score in zset.items() if score <= high]
        for member in stale:
            del zset[member]
        return len(stale)

    async def zcard(self, key):
        return len(self.zsets.get(key, {}))

    async def zadd(self, key, mapping):
        zset = self.zsets.setdefault(key, {})
        added = sum(1 for m in mapping if m not in zset)
        zset.update(mapping)
        return added

    async def expire(self, key, seconds):
        return True

    async def aclose(self):
        pass


# ─── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(redis_client, "_redis_client", fake)
    return fake


@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory schema per test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Drop the pooled connection so the next test opens one on its own loop
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    async with SessionLocal() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_engine):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


async def _make_user(session, role: UserRole, email: str, name: str) -> User:
    user = User(email=email, name=name, hashed_password=PASSWORD_HASH, role=role)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest_asyncio.fixture
async def users(db_session) -> dict[UserRole, User]:
    """One account per role, keyed by role."""
    accounts = {}
    for role in UserRole:
        accounts[role] = await _make_user(
            db_session, role, f"{role.value.lower()}@pizzeria.com", role.value.title(),
        )
    return accounts


@pytest_asyncio.fixture
async def other_customer(db_session) -> User:
    return await _make_user(db_session, UserRole.CUSTOMER, "second.guest@pizzeria.com", "Second Guest")


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(token_claims(user))}"}


@pytest.fixture
def headers(users) -> dict[UserRole, dict[str, str]]:
    return {role: auth_headers(user) for role, user in users.items()}


@pytest_asyncio.fixture
async def menu(db_session) -> dict[str, MenuItem]:
    pizzas = Category(name="Pizza", description="Stone baked", display_order=1)
    drinks = Category(name="Drinks", display_order=2)
    db_session.add_all([pizzas, drinks])
    await db_session.flush()
    items = {
        "margherita": MenuItem(category_id=pizzas.id, name="Margherita", price_cents=1200, is_vegetarian=True),
        "pepperoni": MenuItem(category_id=pizzas.id, name="Pepperoni", price_cents=1450, display_order=1),
        "truffle": MenuItem(category_id=pizzas.id, name="Truffle Special", price_cents=2400, is_available=False),
        "cola": MenuItem(category_id=drinks.id, name="Cola", price_cents=300),
    }
    db_session.add_all(items.values())
    await db_session.commit()
    return items


@pytest_asyncio.fixture
async def modifiers(db_session, menu) -> dict[str, Modifier]:
    """Pizza-only options; mushrooms are off today."""
    pizza_id = menu["margherita"].category_id
    options = {
        "thin": Modifier(name="Thin", kind=ModifierKind.CRUST, price_adjustment_cents=0, category_id=pizza_id),
        "deep_dish": Modifier(name="Deep Dish", kind=ModifierKind.CRUST, price_adjustment_cents=200, category_id=pizza_id),
        "extra_cheese": Modifier(
            name="Extra Cheese", kind=ModifierKind.TOPPING, price_adjustment_cents=150, category_id=pizza_id,
        ),
        "mushrooms": Modifier(
            name="Mushrooms", kind=ModifierKind.TOPPING, price_adjustment_cents=100,
            category_id=pizza_id, is_available=False,
        ),
    }
    db_session.add_all(options.values())
    await db_session.commit()
    return options


@pytest_asyncio.fixture
async def table(db_session) -> DiningTable:
    t1 = DiningTable(number=1, capacity=4, location="Patio", status=TableStatus.AVAILABLE)
    db_session.add(t1)
    await db_session.commit()
    await db_session.refresh(t1)
    return t1


def order_payload(menu, table_id=None, order_type="DINE_IN", **extra) -> dict:
    payload = {
        "order_type": order_type,
        "items": [
            {"menu_item_id": menu["margherita"].id, "quantity": 2},
            {"menu_item_id": menu["pepperoni"].id, "quantity": 1, "customizations": ["extra cheese"]},
        ],
    }
    if table_id:
        payload["table_id"] = table_id
    payload.update(extra)
    return payload

