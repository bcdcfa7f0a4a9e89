"""
Admin Bootstrap Script - creates the first administrator account.

Public registration cannot be trusted to hand out the admin role on a fresh
deployment, so the first admin is created directly in the database. The
account is created verified and approved. Nothing happens if an admin
already exists.

Usage:
    python create_admin.py                                  # Uses ADMIN_EMAIL / ADMIN_PASSWORD
    python create_admin.py admin@school.test s3cret         # Explicit credentials
    python create_admin.py admin@school.test s3cret "Ada"   # With a display name
"""

import os
import sys

from virtuclass.database import SessionLocal, create_tables
from virtuclass.config import DATABASE_URL
from virtuclass.errors import AppError
from virtuclass.models.user import User
from virtuclass.services.users import create_user


def main():
    email = sys.argv[1] if len(sys.argv) > 1 else os.getenv("ADMIN_EMAIL")
    password = sys.argv[2] if len(sys.argv) > 2 else os.getenv("ADMIN_PASSWORD")
    name = sys.argv[3] if len(sys.argv) > 3 else os.getenv("ADMIN_NAME", "Administrator")

    if not email or not password:
        print("Error: admin email and password are required (argv or ADMIN_EMAIL / ADMIN_PASSWORD)")
        sys.exit(1)

    if DATABASE_URL.startswith("sqlite"):
        create_tables()

    db = SessionLocal()
    try:
        existing = db.query(User).filter(User.role == "admin").first()
        if existing:
            print(f"Admin already exists: {existing.email}")
            return

        try:
            admin = create_user(db, email=email, password=password, name=name, role="admin")
        except AppError as e:
            print(f"Error: {e.message}")
            sys.exit(1)

        print("=" * 50)
        print("ADMIN CREATED")
        print("=" * 50)
        print(f"  ID:    {admin.id}")
        print(f"  Email: {admin.email}")
        print(f"  Name:  {admin.name}")
        print("=" * 50)
    finally:
        db.close()


if __name__ == "__main__":
    main()
