from contextlib import contextmanager
import urllib.parse

from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker, scoped_session

from po_lifecycle.config import config
from po_lifecycle.exceptions import DatabaseError

Base = declarative_base()

class Database:
    """Database connection manager for the order lifecycle engine."""

    _instance = None

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Database, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the database connection if not already initialized."""
        if self._initialized:
            return

        self._engine = None
        self._session_factory = None
        self._session = None
        self._initialized = True

    def initialize(self, connection_string=None):
        """Initialize database connection.

        Args:
            connection_string: Optional database connection string.
                              If not provided, will use configuration.
        """
        engine_options = {'echo': config.get_boolean('DATABASE', 'echo', False)}

        if connection_string is None:
            engine = config.get('DATABASE', 'engine', 'postgresql')
            if engine.startswith('sqlite'):
                connection_string = config.get_db_url()
            else:
                username = config.get('DATABASE', 'username', 'postgres')
                password = config.get('DATABASE', 'password', 'postgres')
                host = config.get('DATABASE', 'host', 'localhost')
                port = config.get('DATABASE', 'port', '5432')
                database = config.get('DATABASE', 'database', 'po_lifecycle')

                # URL encode the password to handle special characters
                password = urllib.parse.quote_plus(password)
                connection_string = f"{engine}://{username}:{password}@{host}:{port}/{database}"

        # SQLite uses a single-connection pool, so pool sizing only applies elsewhere
        if not connection_string.startswith('sqlite'):
            engine_options.update(
                pool_size=config.get_int('DATABASE', 'pool_size', 10),
                max_overflow=config.get_int('DATABASE', 'max_overflow', 20),
                pool_timeout=config.get_int('DATABASE', 'pool_timeout', 30),
                pool_recycle=config.get_int('DATABASE', 'pool_recycle', 1800)
            )

        try:
            self._engine = create_engine(connection_string, **engine_options)
        except Exception as e:
            raise DatabaseError(f"Database initialization failed: {str(e)}")

        self._session_factory = sessionmaker(bind=self._engine)
        self._session = scoped_session(self._session_factory)

    def create_all_tables(self):
        """Create all tables defined in the models."""
        import po_lifecycle.models  # noqa: F401 registers the mappers on Base
        Base.metadata.create_all(self.engine)

    def drop_all_tables(self):
        """Drop all tables from the database."""
        import po_lifecycle.models  # noqa: F401
        Base.metadata.drop_all(self.engine)

    @property
    def session(self):
        """Get the current database session."""
        if self._session is None:
            self.initialize()
        return self._session

    @property
    def engine(self):
        """Get the database engine."""
        if self._engine is None:
            self.initialize()
        return self._engine

    @contextmanager
    def session_scope(self):
        """Provide a transactional scope around a series of operations."""
        session = self.session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def test_connection(self):
        """Run a trivial query against the configured database.

        Raises:
            DatabaseError: If the database cannot be reached
        """
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except Exception as e:
            raise DatabaseError(f"Database connection test failed: {str(e)}")

# Global database instance
db = Database()

@contextmanager
def session_scope():
    """Session scope context manager."""
    with db.session_scope() as session:
        yield session
