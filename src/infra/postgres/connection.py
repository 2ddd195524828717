"""PostgreSQL connection management.

Authenticated round-trip queries as the application role. Uses psycopg2
over TCP so the check exercises the same path the Rails app uses.
"""

from typing import Any

import psycopg2
import psycopg2.extras

from src.utils.paths import make_postgres_url

from .settings import ClusterSettings


class PostgresConnection:
    """PostgreSQL connection manager.

    Uses psycopg2 for database operations.
    """

    def __init__(self, settings: ClusterSettings, database: str = "postgres"):
        """PostgreSQL connection manager.

        Args:
            settings: Cluster settings (host, port, application role)
            database: Database to connect to
        """
        self._settings = settings
        self._database = database
        self._conn: Any | None = None

    def get_dsn(self, database: str | None = None) -> dict[str, Any]:
        """Get connection parameters for psycopg2.connect()."""
        s = self._settings
        return {
            "host": s.host,
            "port": s.port,
            "dbname": database or self._database,
            "user": s.app_user,
            "password": s.app_password,
            "sslmode": "disable",
            "connect_timeout": 5,
        }

    def get_connection_string(self, database: str | None = None) -> str:
        """Get a postgresql:// URL for the application role."""
        dsn = self.get_dsn(database)
        return make_postgres_url(
            dsn["user"], dsn["password"], dsn["host"], dsn["port"], dsn["dbname"]
        )

    def ensure_connected(self) -> Any:
        """Ensure a connection exists, creating one if needed."""
        if self._conn is None or self._conn.closed:
            self._conn = psycopg2.connect(**self.get_dsn())
        return self._conn

    def close(self) -> None:
        """Close the current connection if open."""
        if self._conn and not self._conn.closed:
            self._conn.close()
        self._conn = None

    def test_connection(self) -> tuple[bool, str]:
        """Test database connectivity with SELECT version().

        Creates a separate test connection without affecting the main connection.

        Returns:
            Tuple of (success, server version string or error message)
        """
        try:
            with psycopg2.connect(**self.get_dsn()) as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT version()")
                    row = cur.fetchone()
                    return True, row[0] if row else "Connected"
        except psycopg2.OperationalError as e:
            return False, f"Connection failed: {e}"
        except psycopg2.Error as e:
            return False, f"Error: {e}"

    def execute(
        self, sql: str, params: tuple[Any, ...] | None = None
    ) -> list[dict[str, Any]]:
        """Execute SQL and return results as list of dicts."""
        conn = self.ensure_connected()
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(sql, params)
            if cur.description:
                return [dict(row) for row in cur.fetchall()]
            conn.commit()
            return []

    def scalar(self, sql: str, params: tuple[Any, ...] | None = None) -> Any:
        """Execute SQL and return single scalar value."""
        result = self.execute(sql, params)
        if result and result[0]:
            return list(result[0].values())[0]
        return None

    def __enter__(self) -> "PostgresConnection":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
