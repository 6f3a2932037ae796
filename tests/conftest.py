import os
import tempfile

# settings are read once at import time, so the environment must be ready first
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["VICINITY_FEATURE_ENABLED"] = "false"
os.environ["FILE_LOCAL_DIR"] = tempfile.mkdtemp(prefix="luggage-files-")
