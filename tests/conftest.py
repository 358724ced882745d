import os

# Keep test runs from writing per-run log files.
os.environ.setdefault("SESSIONTALLY_LOG_DIR", "")
