import logging
import sqlite3

logger = logging.getLogger(__name__)


def get_db_connection(path: str = "todo.db"):
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row  # rows behave like dicts
    return conn


# Create tables if missing (idempotent)


def init_db(path: str = "todo.db"):
    conn = get_db_connection(path)
    cursor = conn.cursor()
    cursor.execute('''
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT NOT NULL UNIQUE,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    ''')
    cursor.execute('''
    CREATE TABLE IF NOT EXISTS tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        owner_id INTEGER REFERENCES users(id),
        title TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        priority TEXT NOT NULL DEFAULT 'medium',
        completed BOOLEAN NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    ''')
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks (owner_id)")
    conn.commit()
    conn.close()
    logger.info("Database ready at %s", path)


# Running database.py directly initialises todo.db
if __name__ == "__main__":
    init_db()
