import argparse
import sys
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

load_dotenv()

# Allow running as `python scripts/migrate.py` from the project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.core.config import settings  # noqa: E402

DEFAULT_MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"


def collect_sql_files(target_path: Path):
    """Return the .sql files to run, sorted by name, or None if the path is unusable."""
    if not target_path.exists():
        print(f"Error: Path {target_path} does not exist.")
        return None

    if target_path.is_file():
        if target_path.suffix != ".sql":
            print(f"Warning: File {target_path} does not appear to be a SQL file.")
        print(f"Running specific migration: {target_path.name}...")
        return [target_path]

    sql_files = sorted(target_path.glob("*.sql"))
    print(f"Running all migrations from {target_path}...")
    if not sql_files:
        print(f"No .sql files found in {target_path}")
    return sql_files


def run_migrations(path_arg=None, dry_run=False, database_url=None) -> bool:
    """Apply migrations in order; stops at the first failing file."""
    if settings.database.backend != "postgres":
        print(
            f"DATABASE_BACKEND is '{settings.database.backend}'; "
            "the sqlite backend creates its schema on first use."
        )
        return True

    target_path = Path(path_arg) if path_arg else DEFAULT_MIGRATIONS_DIR
    sql_files = collect_sql_files(target_path)
    if sql_files is None:
        return False
    if not sql_files:
        return True

    if dry_run:
        print("\n--- DRY RUN MODE: No changes will be applied ---\n")
        for sql_file in sql_files:
            print(f"[DRY-RUN] Would execute: {sql_file.name}")
        print("\n--- DRY RUN COMPLETED ---")
        return True

    try:
        conn = psycopg2.connect(database_url or settings.database.url)
    except psycopg2.Error as e:
        print(f"Error connecting to database: {e}")
        return False

    ok = True
    try:
        with conn.cursor() as cursor:
            for sql_file in sql_files:
                print(f"Running {sql_file.name}...")
                try:
                    cursor.execute(sql_file.read_text())
                    conn.commit()
                    print(f"✓ {sql_file.name} executed successfully")
                except psycopg2.Error as e:
                    conn.rollback()
                    print(f"✗ Error executing {sql_file.name}: {e}")
                    ok = False
                    break
    finally:
        conn.close()

    if ok:
        print("Migration(s) completed!")
    return ok


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create or update the message_queue schema")
    parser.add_argument("path", nargs="?", help="Specific migration file path or directory to run (optional)")
    parser.add_argument("--dry-run", action="store_true", help="Simulate migration execution without applying changes")
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    args = parser.parse_args()

    sys.exit(0 if run_migrations(args.path, args.dry_run, args.database_url) else 1)
