"""
Seed script: creates the demo company, its users and a sample approval rule,
then prints development bearer tokens.
Run from the project root: python -m scripts.seed
"""
import asyncio
import sys
import os
from datetime import date
from decimal import Decimal

# Ensure the project root is on sys.path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select
import structlog

import api.models  # noqa: F401
from api.database import AsyncSessionLocal, Base, engine
from api.logging_config import setup_logging
from api.models.company import Company
from api.models.enums import Role
from api.models.user import User
from api.services.auth_service import create_access_token
from api.services.expense_service import create_expense
from api.services.rule_service import create_rule

logger = structlog.get_logger()

COMPANY = {"name": "TechCorp Inc", "base_currency": "USD", "country": "United States"}

MANAGERS = [
    ("John Manager", "john@techcorp.com"),
    ("Mitchell Manager", "mitchell@techcorp.com"),
    ("Andreas Manager", "andreas@techcorp.com"),
]

# (name, email, index into MANAGERS)
EMPLOYEES = [
    ("Sarah Employee", "sarah@techcorp.com", 0),
    ("Mike Employee", "mike@techcorp.com", 1),
    ("Lisa Employee", "lisa@techcorp.com", 2),
]


async def seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        existing = await db.execute(select(Company).where(Company.name == COMPANY["name"]))
        if existing.scalar_one_or_none():
            logger.info("seed_skipped", reason="company already exists")
            return

        company = Company(**COMPANY)
        db.add(company)
        await db.flush()

        admin = User(
            company_id=company.id,
            email="admin@techcorp.com",
            name="Admin User",
            role=Role.ADMIN.value,
        )
        db.add(admin)

        managers = []
        for name, email in MANAGERS:
            m = User(company_id=company.id, email=email, name=name, role=Role.MANAGER.value)
            db.add(m)
            managers.append(m)
        await db.flush()

        employees = []
        for name, email, manager_idx in EMPLOYEES:
            e = User(
                company_id=company.id,
                email=email,
                name=name,
                role=Role.EMPLOYEE.value,
                manager_id=managers[manager_idx].id,
            )
            db.add(e)
            employees.append(e)
        await db.flush()

        # Lisa's expenses need two managers in order; the others fall back
        # to their direct manager.
        await create_rule(
            db,
            name="Lisa two-step approval",
            applies_to_user_id=employees[2].id,
            is_sequential=True,
            min_approval_percentage=100,
            approver_ids=[managers[2].id, managers[0].id],
        )

        await create_expense(
            db, employees[0].id, "Team Lunch", Decimal("75.50"), "USD",
            date(2024, 1, 15), category="Meals", is_draft=False,
        )
        await create_expense(
            db, employees[0].id, "Flight to Conference", Decimal("450.00"), "USD",
            date(2024, 1, 10), category="Travel", is_draft=False,
        )
        await create_expense(
            db, employees[1].id, "Office Supplies", Decimal("120.75"), "USD",
            date(2024, 1, 8), category="Office Supplies",
        )

        await db.commit()

        print("\n=== Sample Data Created Successfully ===")
        for user in [admin, *managers, *employees]:
            token = create_access_token(user.id, company.id, Role(user.role), user.email)
            print(f"{user.role:<9} {user.email:<24} {token}")
        print("==========================================\n")


if __name__ == "__main__":
    setup_logging()
    asyncio.run(seed())
