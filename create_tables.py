# create_tables.py
from licitahub.database import engine, Base
from licitahub.models import Profile, UserRole, AdminBootstrap, SavedFilter, AuditLog

# Create all tables
Base.metadata.create_all(bind=engine)
print("✓ LicitaHub tables created successfully!")
print(f"  {', '.join(table for table in Base.metadata.tables)}")
