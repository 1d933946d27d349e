"""CLI commands for Aurora Hunts."""

import argparse
import getpass
import sys

from sqlalchemy.orm import Session

from aurora_hunts.database import SessionLocal
from aurora_hunts.models.user import User
from aurora_hunts.services.auth.local_provider import hash_password
from aurora_hunts.services.participation_service import ParticipationService


def create_admin(email: str, password: str | None = None) -> None:
    """Create an admin user."""
    db: Session = SessionLocal()

    try:
        existing = db.query(User).filter(User.email == email.lower()).first()
        if existing:
            print(f"Error: User with email '{email}' already exists.")
            sys.exit(1)

        if not password:
            password = getpass.getpass("Password: ")
            password_confirm = getpass.getpass("Confirm password: ")
            if password != password_confirm:
                print("Error: Passwords do not match.")
                sys.exit(1)

        if len(password) < 8:
            print("Error: Password must be at least 8 characters.")
            sys.exit(1)

        user = User(email=email.lower(), password_hash=hash_password(password), is_admin=True)
        db.add(user)
        db.commit()

        print(f"Admin user created successfully: {email}")

    finally:
        db.close()


def cleanup_participants(enqueue: bool = False) -> None:
    """Expire stale participants now, or hand the job to the worker queue."""
    if enqueue:
        from aurora_hunts.workers.cleanup_worker import cleanup_expired_participants

        cleanup_expired_participants.send()
        print("Cleanup job enqueued.")
        return

    db: Session = SessionLocal()

    try:
        cleaned = ParticipationService(db).cleanup_expired()
        db.commit()
        print(f"Cleaned up {cleaned} expired participants.")
    except Exception as e:
        db.rollback()
        print(f"Error: Cleanup failed: {e}")
        sys.exit(1)
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Aurora Hunts CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    create_admin_parser = subparsers.add_parser(
        "create-admin", help="Create an admin user"
    )
    create_admin_parser.add_argument(
        "--email", required=True, help="Admin email address"
    )
    create_admin_parser.add_argument(
        "--password", help="Admin password (will prompt if not provided)"
    )

    cleanup_parser = subparsers.add_parser(
        "cleanup-participants",
        help="Cancel expired pending and waitlisted hunt participants",
    )
    cleanup_parser.add_argument(
        "--enqueue",
        action="store_true",
        help="Send the job to the Dramatiq worker instead of running it here",
    )

    args = parser.parse_args()

    if args.command == "create-admin":
        create_admin(args.email, args.password)
    elif args.command == "cleanup-participants":
        cleanup_participants(enqueue=args.enqueue)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
