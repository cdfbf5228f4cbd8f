#!/usr/bin/env python3
"""
Create the chat database tables without dropping existing ones, then make
sure the built-in admin account exists.
"""

from sihha.database import Base, SessionLocal, engine
import sihha.models  # noqa: F401
from sihha.services.user_service import UserService

print("Creating database tables...")

try:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        UserService(db).ensure_admin_account()
    finally:
        db.close()
    print("✅ Database tables created successfully!")
    print()
    print("The following tables are now available:")
    for table_name in Base.metadata.tables.keys():
        print(f"  - {table_name}")
except Exception as e:
    print(f"❌ Error creating tables: {e}")
    raise
