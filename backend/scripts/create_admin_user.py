"""
Script to create the first global admin user.
Run this after migrations to create the initial admin account.
"""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.database import SessionLocal
from app.core.security import hash_password, validate_password_strength
from app.models.roles import GlobalRole
from app.models.user import User


def create_admin_user(email: str, password: str, username: str = "admin") -> bool:
    """Create a GLOBAL_ADMIN user; returns False if one with this email exists."""
    problems = validate_password_strength(password)
    if problems:
        for problem in problems:
            print(f"❌ {problem}")
        return False

    db = SessionLocal()
    try:
        existing = db.query(User).filter(User.email == email.strip().lower()).first()
        if existing:
            print(f"User with email {email} already exists!")
            return False

        admin = User(
            email=email,
            username=username,
            hashed_password=hash_password(password),
            role=GlobalRole.GLOBAL_ADMIN,
            is_active=True,
        )

        db.add(admin)
        db.commit()
        print(f"✅ Global admin created successfully!")
        print(f"   Email: {admin.email}")
        print(f"   Username: {username}")
        return True

    except Exception as e:
        db.rollback()
        print(f"❌ Error creating admin user: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description='Create the first global admin user')
    parser.add_argument('--email', required=True, help='Admin email')
    parser.add_argument('--password', required=True, help='Admin password')
    parser.add_argument('--username', default='admin', help='Admin display name')

    args = parser.parse_args()
    sys.exit(0 if create_admin_user(args.email, args.password, args.username) else 1)
