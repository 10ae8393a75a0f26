"""Test fixtures for finance tracker MCP server tests."""

from datetime import date

import pytest

from finance_tracker_mcp.database import Database
from finance_tracker_mcp.sync_engine import SyncEngine


# Reference date for every fixture-based scenario
TODAY = date(2024, 6, 30)


@pytest.fixture
def today() -> date:
    """Fixed reference date matching populated_db."""
    return TODAY


@pytest.fixture
def db() -> Database:
    """Create in-memory database with schema."""
    database = Database(":memory:")
    database.init_schema()
    return database


@pytest.fixture
def populated_db(db: Database) -> Database:
    """Create in-memory database populated with a small household snapshot.

    Streaming subscriptions (Spotify, Netflix) and a monthly-tracked gym sit in
    recurring categories; car insurance and property tax are tracked yearly.
    """
    conn = db.connect()

    accounts = [
        ("acc-bbva", "BBVA Nómina", "Banco", "MXN", 25000.0, None, 0, "2024-01-01T00:00:00+00:00"),
        ("acc-amex", "Amex Oro", "Tarjeta de Crédito", "MXN", 0.0, None, 0, "2024-01-01T00:00:00+00:00"),
        ("acc-casa", "Depto Roma", "Bien Raíz", "MXN", 2500000.0, 2800000.0, 1, "2024-01-01T00:00:00+00:00"),
    ]
    conn.executemany(
        """INSERT INTO accounts
        (id, name, type, currency, opening_balance, market_value, sold, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        accounts,
    )

    categories = [
        ("cat-streaming", "Entretenimiento", "Suscripciones", "Gastos", None, "2024-01-01T00:00:00+00:00"),
        ("cat-gym", "Salud", "Gimnasio", "Gastos", "mensual", "2024-01-01T00:00:00+00:00"),
        ("cat-insurance", "Seguros", "Seguro Auto", "Gastos", "anual", "2024-01-01T00:00:00+00:00"),
        ("cat-predial", "Impuestos", "Predial", "Gastos", "anual", "2024-01-01T00:00:00+00:00"),
        ("cat-life", "Seguros", "Seguro Vida", "Gastos", "anual", "2024-01-01T00:00:00+00:00"),
        ("cat-grocery", "Comida", "Supermercado", "Gastos", None, "2024-01-01T00:00:00+00:00"),
        ("cat-salary", "Trabajo", "Sueldo", "Ingreso", None, "2024-01-01T00:00:00+00:00"),
    ]
    conn.executemany(
        """INSERT INTO categories
        (id, category, subcategory, type, tracking_frequency, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)""",
        categories,
    )

    transactions = [
        # Spotify, monthly on the 15th; the first one is outside the 12-month window
        ("tx-sp0", "acc-amex", "2023-01-15", "SPOTIFY*0001", 0.0, 179.0, "cat-streaming", "MXN"),
        ("tx-sp1", "acc-amex", "2024-01-15", "SPOTIFY*1234", 0.0, 179.0, "cat-streaming", "MXN"),
        ("tx-sp2", "acc-amex", "2024-02-15", "SPOTIFY*5678", 0.0, 179.0, "cat-streaming", "MXN"),
        ("tx-sp3", "acc-amex", "2024-03-15", "SPOTIFY*9012", 0.0, 179.0, "cat-streaming", "MXN"),
        # Netflix, monthly on the 3rd
        ("tx-nf1", "acc-amex", "2024-04-03", "NETFLIX.COM", 0.0, 219.0, "cat-streaming", "MXN"),
        ("tx-nf2", "acc-amex", "2024-05-03", "NETFLIX.COM 0524", 0.0, 219.0, "cat-streaming", "MXN"),
        ("tx-nf3", "acc-amex", "2024-06-03", "NETFLIX.COM", 0.0, 219.0, "cat-streaming", "MXN"),
        # Gym, monthly-tracked category
        ("tx-gym1", "acc-bbva", "2024-05-10", "SMART FIT POLANCO", 0.0, 599.0, "cat-gym", "MXN"),
        ("tx-gym2", "acc-bbva", "2024-06-10", "SMARTFIT POLANCO", 0.0, 599.0, "cat-gym", "MXN"),
        # Yearly payments
        ("tx-ins1", "acc-bbva", "2023-06-01", "SEGURO AUTO ANUAL", 0.0, 11500.0, "cat-insurance", "MXN"),
        ("tx-ins2", "acc-bbva", "2024-06-01", "SEGURO AUTO ANUAL", 0.0, 12000.0, "cat-insurance", "MXN"),
        ("tx-pr1", "acc-bbva", "2024-01-20", "PREDIAL 2024", 0.0, 3500.0, "cat-predial", "MXN"),
        # Not recurring
        ("tx-g1", "acc-bbva", "2024-06-05", "WALMART SUPERCENTER", 0.0, 850.0, "cat-grocery", "MXN"),
        ("tx-sal1", "acc-bbva", "2024-06-15", "NOMINA JUNIO", 45000.0, 0.0, "cat-salary", "MXN"),
    ]
    conn.executemany(
        """INSERT INTO transactions
        (id, account_id, date, memo, income, expense, category_id, currency)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        transactions,
    )

    conn.commit()
    return db


@pytest.fixture
def sync_engine(db: Database) -> SyncEngine:
    """Create sync engine with test database."""
    return SyncEngine(db, "https://test.supabase.co", "test_key")


@pytest.fixture
def sample_snapshot() -> dict:
    """Sample PostgREST rows keyed by remote table name."""
    return {
        "cuentas": [
            {
                "id": "acc-1",
                "nombre": "Cuenta de prueba",
                "tipo": "Banco",
                "divisa": "MXN",
                "saldo_inicial": 10000.0,
                "vendida": False,
                "updated_at": "2024-06-01T10:00:00+00:00",
            },
        ],
        "categorias": [
            {
                "id": "cat-1",
                "categoria": "Entretenimiento",
                "subcategoria": "Suscripciones",
                "tipo": "Gastos",
                "frecuencia_seguimiento": None,
                "updated_at": "2024-06-01T10:00:00+00:00",
            },
            {
                "id": "cat-2",
                "categoria": "Seguros",
                "subcategoria": "Seguro Auto",
                "tipo": "Gastos",
                "frecuencia_seguimiento": "anual",
                "updated_at": "2024-06-02T10:00:00+00:00",
            },
        ],
        "transacciones": [
            {
                "id": "tx-1",
                "cuenta_id": "acc-1",
                "fecha": "2024-06-15T00:00:00+00:00",
                "comentario": "SPOTIFY*1234",
                "ingreso": 0,
                "gasto": 179,
                "subcategoria_id": "cat-1",
                "divisa": "MXN",
                "updated_at": "2024-06-15T12:00:00+00:00",
            },
        ],
    }
