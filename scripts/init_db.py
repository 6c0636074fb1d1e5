import sys
from pathlib import Path

# Add backend/app to path
backend_path = Path(__file__).resolve().parents[1] / "backend" / "app"
sys.path.insert(0, str(backend_path))

from validai.core.config import settings  # noqa: E402
from validai.database.config import init_db  # noqa: E402


if __name__ == "__main__":
    print(f"Creating all tables in {settings.DB_URL} ...")
    init_db()
    print("Tables created successfully.")
