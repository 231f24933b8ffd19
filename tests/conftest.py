import os

# Settings are cached on first use, so the environment is pinned before any
# project module asks for them.
os.environ.setdefault("FINANCE_DATABASE_URL", "sqlite://")
os.environ.setdefault("FINANCE_TIMEZONE", "UTC")
os.environ.setdefault("FINANCE_SCHEDULER_ENABLED", "0")
os.environ.pop("FINANCE_DEV_OWNER", None)
os.environ.setdefault("FINANCE_IDENTITY_SECRET", "test-signing-key")
