import os

# In-memory store and no background keepalives unless a test asks for them.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6399/0")
os.environ.setdefault("WS_HEARTBEAT_INTERVAL_SEC", "3600")
os.environ.setdefault("STORE_TIMEOUT_SECS", "2")
os.environ.setdefault("LOG_SAMPLE_2XX", "0")
