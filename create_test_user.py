"""
Create test user (and an admin for the level override endpoint)
Run:  python create_test_user.py
"""
from capling.application.budget import BudgetReconciler
from capling.application.progression import ProgressionLedger
from capling.application.transactions import TransactionLedger
from capling.infrastructure.db.session import get_db
from capling.infrastructure.db.models import User

USERS = [
    ("test@example.com", False),
    ("admin@example.com", True),
]

db = next(get_db())

for email, is_admin in USERS:
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        print(f"User already exists: {email} (ID: {existing.id})")
        continue

    user = User(email=email, is_admin=is_admin)
    db.add(user)
    db.commit()

    # account, budget profile and progression are created lazily; touch them once
    TransactionLedger(db).get_account(user.id)
    BudgetReconciler(db).get_weekly_budget(user.id)
    ProgressionLedger(db).get_progression(user.id)

    print("Created user:")
    print(f"  Email: {email}")
    print(f"  ID: {user.id}")
    print(f"  Admin: {is_admin}")

db.close()
