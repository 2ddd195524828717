import os

# Keep tests away from sudo and from any devdb.yaml in the working directory
os.environ.setdefault("DEVDB_USE_SUDO", "false")
os.environ.setdefault("DEVDB_CONFIG", "/nonexistent/devdb.yaml")

from tests.fixtures import *  # noqa: F401,F403,E402
