# =============================================================================
# Database Engines & Session Management
# =============================================================================
#
# DESIGN DECISION: Two async SQLAlchemy engines.
# The chat pipeline touches two logical databases:
#
#   1. async_engine    — application store (chat messages, turn metrics).
#                        Read/write, used through async_session_factory.
#   2. evidence_engine — read replica holding the case-sensitive evidence
#                        views (fundamentals, news, prices, ...). Used only
#                        through raw connections by the query executor,
#                        the ticker resolver and portfolio enrichment.
#
# The evidence engine is marked read-only at the driver level and every
# connection carries a server-side statement_timeout, so a model-generated
# query can neither write nor run unbounded even if it slips past the
# keyword filter.
#
# SESSION LIFECYCLE (application store):
# Background tasks (turn persistence) run after the response is sent, outside
# the request dependency lifecycle, so they open their own session from
# async_session_factory and MUST commit explicitly.
#
# CONNECTION LIFECYCLE (evidence store):
#   async with evidence_engine.connect() as conn:
#       result = await conn.execute(...)
# The context manager returns the connection to the pool on every exit path,
# including exceptions and task cancellation.
# =============================================================================

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from finchat.config import settings

# ---------------------------------------------------------------------------
# Application Engine
# ---------------------------------------------------------------------------
# - echo=True (debug mode): logs every SQL statement.
# - pool_size / max_overflow: tuned from settings; the application store
#   sees one short write per turn, so defaults are modest.
# ---------------------------------------------------------------------------
async_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)

# ---------------------------------------------------------------------------
# Session Factory
# ---------------------------------------------------------------------------
# expire_on_commit=False: loaded attributes stay readable after commit
# without triggering lazy loads outside the session.
# ---------------------------------------------------------------------------
async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Evidence Engine (read replica)
# ---------------------------------------------------------------------------
# - postgresql_readonly: every transaction is opened READ ONLY.
# - statement_timeout: server-side ceiling per statement, in ms. asyncpg
#   passes server_settings straight to the session on connect.
#
# The pool is the only mutable resource shared between concurrent turns;
# concurrent evidence queries within one turn are bounded by its size.
# ---------------------------------------------------------------------------
evidence_engine = create_async_engine(
    settings.resolved_evidence_database_url,
    echo=settings.debug,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    execution_options={"postgresql_readonly": True},
    connect_args={
        "server_settings": {
            "statement_timeout": str(settings.sql_statement_timeout_ms),
        },
    },
)


async def dispose_engines() -> None:
    """Close both connection pools (application shutdown)."""
    await async_engine.dispose()
    await evidence_engine.dispose()
