import importlib

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from storefront.config import settings
from storefront.utils.log import get_logger

log = get_logger("db")

DATABASE_URL = settings.DATABASE_URL
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, future=True, echo=False, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


if engine.dialect.name == "sqlite":
    # pysqlite defers BEGIN until the first DML statement, which breaks SAVEPOINT
    # and the read-validate-write sequences in checkout. Emit BEGIN ourselves.
    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        # readers must not block the writer committing an order
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")


# Every model module must be imported before create_all so metadata is populated.
MODEL_MODULES = [
    "storefront.models.catalog",
    "storefront.models.cart_item",
    "storefront.models.coupon",
    "storefront.models.order",
    "storefront.models.idempotency",
]


def init_db(reset: bool = False):
    """
    Initialize DB schema.

    Behavior:
      - If reset is True (or RESET_DB is set in the environment/.env), drop & recreate tables.
      - Otherwise, leave existing tables in place.
    """
    for mod in MODEL_MODULES:
        importlib.import_module(mod)

    if reset or settings.RESET_DB:
        log.info("Resetting database schema")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    log.info("Database initialized (%s)", engine.url.render_as_string(hide_password=True))


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
