#!/usr/bin/env python3
"""
Insert the public starter templates.

The schema comes from the Alembic revisions in app/migrations/versions;
apply them before seeding.

Usage:
  cd backend
  export DATABASE_URL="postgresql://..."   # or .env
  PYTHONPATH=. python scripts/seed_templates.py
"""

from __future__ import annotations

import logging
import os
import sys

# Run from repo root or backend; ensure backend is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.dependencies import SessionLocal
from app.services.template_service import seed_public_templates


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if SessionLocal is None:
        print("Error: DATABASE_URL is not set.", file=sys.stderr)
        sys.exit(1)

    db = SessionLocal()
    try:
        added = seed_public_templates(db)
        db.commit()
        print(f"Added {added} public template(s).")
    finally:
        db.close()


if __name__ == "__main__":
    main()
