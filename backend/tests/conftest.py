import os

# settings are cached on first import; point them at SQLite before app modules load
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SEED_DEMO_DATA", "false")
os.environ.setdefault("AUTO_CREATE_SCHEMA", "false")
