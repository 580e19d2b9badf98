import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from models import init_db

if __name__ == "__main__":
    print("Creating catalog tables...")
    init_db()
    print("✅ Catalog tables created successfully!")
