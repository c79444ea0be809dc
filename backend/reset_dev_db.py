#!/usr/bin/env python3
"""
Reset development database - creates fresh schema, seeds one contract per
tenant and prints bearer tokens for local testing.
Run from the backend/ directory.
"""
import argparse
import os
import sys
from decimal import Decimal
from pathlib import Path

# Ensure we're in the backend directory
backend_dir = Path(__file__).parent
os.chdir(backend_dir)
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Force load .env before importing costcontrol modules
from dotenv import load_dotenv

load_dotenv(backend_dir / ".env", override=True)

# Always target the local sqlite dev DB for this script.
os.environ["DATABASE_URL"] = "sqlite:///./dev.db"

# Now import costcontrol modules
from costcontrol import models  # noqa: E402
from costcontrol.core.security import create_access_token_for_principal  # noqa: E402
from costcontrol.core.tenancy import Principal  # noqa: E402
from costcontrol.database import Base, SessionLocal, engine  # noqa: E402

SEED_CONTRACTS = [
    ("tenant-a", "CT-A-001", "Warehouse fit-out", "USD", Decimal("1000.00")),
    ("tenant-b", "CT-B-001", "Office renovation", "VND", Decimal("250000000.00")),
]


def main() -> None:
    parser = argparse.ArgumentParser(description="Reset the local dev database.")
    parser.add_argument("--role", default="admin", help="Role claim of the printed tokens")
    parser.add_argument(
        "--token-minutes", type=int, default=8 * 60, help="Lifetime of the printed tokens"
    )
    args = parser.parse_args()

    db_path = backend_dir / "dev.db"
    if db_path.exists():
        print(f"Removing existing database: {db_path}")
        db_path.unlink()

    # Create all tables to match current ORM models.
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        for tenant_id, code, name, currency, total_value in SEED_CONTRACTS:
            contract = models.Contract(
                tenant_id=tenant_id,
                code=code,
                name=name,
                currency=currency,
                total_value=total_value,
            )
            db.add(contract)
            db.flush()
            principal = Principal(id=f"dev-{tenant_id}", tenant_id=tenant_id, role=args.role)
            token = create_access_token_for_principal(principal, args.token_minutes)
            print(f"{tenant_id}  contract={contract.id}  code={code}")
            print(f"  Authorization: Bearer {token}")
        db.commit()
    finally:
        db.close()


if __name__ == "__main__":
    main()
