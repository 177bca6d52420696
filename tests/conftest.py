"""Root conftest: shared test configuration."""

import os

# Force unconfigured mode; empty values also stop load_dotenv from filling them in
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_ANON_KEY"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"
