"""
Подключение к базе данных (PostgreSQL или SQLite)
"""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from .config import get_settings

settings = get_settings()

# Базовый класс для моделей
Base = declarative_base()


WRITE_OPTION = "sqlite_begin_immediate"


def _serialize_sqlite_transactions(engine: Engine) -> None:
    """
    SQLite не поддерживает SELECT ... FOR UPDATE.
    Транзакции на запись (begin_write) начинаются с BEGIN IMMEDIATE: проверка
    и вставка идут под блокировкой на запись. Остальные транзакции обычные,
    а WAL позволяет читателям не мешать записи.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Отключаем собственное управление транзакциями в pysqlite
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get(WRITE_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Создать движок базы данных для указанного URL"""
    if database_url.startswith("sqlite"):
        # SQLite - для локальной разработки и тестов
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=echo
        )
        _serialize_sqlite_transactions(engine)
        return engine

    # PostgreSQL - для продакшена
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        echo=echo
    )


# Создание движка базы данных
engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# Создание фабрики сессий
# Объекты не сбрасываются после commit: повторное чтение открыло бы новую транзакцию
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db():
    """
    Dependency для получения сессии базы данных
    Использование:
        @router.get("/items")
        def read_items(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def begin_write(db: Session) -> None:
    """
    Начать транзакцию на запись.
    Открытая читающая транзакция сессии завершается: на SQLite её нельзя
    повысить до записи, если другая сессия уже успела записать.
    """
    if db.in_transaction():
        db.commit()
    db.connection(execution_options={WRITE_OPTION: True})


def init_db(bind: Engine = None):
    """
    Инициализация базы данных
    Создание всех таблиц, определенных в моделях
    """
    from . import models  # noqa: F401  регистрация моделей в Base.metadata

    Base.metadata.create_all(bind=bind or engine)
