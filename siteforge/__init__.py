import os

from siteforge.config import load_env_file

# Tests stay offline: never pick up a developer's .env under pytest
if not os.getenv("PYTEST_CURRENT_TEST"):
    load_env_file(os.getenv("SITEFORGE_ENV_FILE", ".env"))
