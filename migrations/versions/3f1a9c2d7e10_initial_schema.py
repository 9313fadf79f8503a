"""initial_schema

Revision ID: 3f1a9c2d7e10
Revises:
Create Date: 2026-10-18 09:12:44.518203+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7e10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 1. companies (no FKs)
    op.create_table('companies',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=200), nullable=False),
    sa.Column('base_currency', sa.String(length=3), nullable=False),
    sa.Column('country', sa.String(length=100), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )

    # 2. users (FK to companies + self-referencing manager)
    op.create_table('users',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('company_id', sa.Integer(), nullable=False),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('name', sa.String(length=200), nullable=False),
    sa.Column('role', sa.String(length=20), nullable=False),
    sa.Column('manager_id', sa.Integer(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint("role IN ('Admin', 'Manager', 'Employee')", name='chk_users_role'),
    sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
    sa.ForeignKeyConstraint(['manager_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('email')
    )
    op.create_index('idx_users_company', 'users', ['company_id'], unique=False)
    op.create_index('idx_users_manager', 'users', ['manager_id'], unique=False)

    # 3. approval_rules + rule_approvers
    op.create_table('approval_rules',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=200), nullable=False),
    sa.Column('applies_to_user_id', sa.Integer(), nullable=False),
    sa.Column('is_sequential', sa.Boolean(), nullable=False),
    sa.Column('min_approval_percentage', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint('min_approval_percentage BETWEEN 1 AND 100', name='chk_rules_min_percentage'),
    sa.ForeignKeyConstraint(['applies_to_user_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('applies_to_user_id')
    )
    op.create_table('rule_approvers',
    sa.Column('rule_id', sa.Integer(), nullable=False),
    sa.Column('approver_user_id', sa.Integer(), nullable=False),
    sa.Column('sequence', sa.Integer(), nullable=False),
    sa.CheckConstraint('sequence > 0', name='chk_rule_approvers_sequence_positive'),
    sa.ForeignKeyConstraint(['approver_user_id'], ['users.id'], ),
    sa.ForeignKeyConstraint(['rule_id'], ['approval_rules.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('rule_id', 'approver_user_id'),
    sa.UniqueConstraint('rule_id', 'sequence', name='uq_rule_approvers_sequence')
    )

    # 4. expenses (routing snapshot references approval_rules)
    op.create_table('expenses',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('submitter_id', sa.Integer(), nullable=False),
    sa.Column('description', sa.Text(), nullable=False),
    sa.Column('amount', sa.Numeric(precision=14, scale=2), nullable=False),
    sa.Column('currency', sa.String(length=3), nullable=False),
    sa.Column('converted_amount', sa.Numeric(precision=14, scale=2), nullable=True),
    sa.Column('base_currency', sa.String(length=3), nullable=True),
    sa.Column('category', sa.String(length=100), nullable=True),
    sa.Column('expense_date', sa.Date(), nullable=False),
    sa.Column('receipt_image', sa.String(length=500), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('approval_rule_id', sa.Integer(), nullable=True),
    sa.Column('is_sequential', sa.Boolean(), nullable=True),
    sa.Column('min_approval_percentage', sa.Integer(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.Column('submitted_at', sa.DateTime(), nullable=True),
    sa.Column('decided_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint("status IN ('Draft', 'Submitted', 'Approved', 'Rejected')", name='chk_expenses_status'),
    sa.CheckConstraint('amount > 0', name='chk_expenses_amount_positive'),
    sa.ForeignKeyConstraint(['approval_rule_id'], ['approval_rules.id'], ),
    sa.ForeignKeyConstraint(['submitter_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_expenses_submitter', 'expenses', ['submitter_id', 'status'], unique=False)

    # 5. approvals ledger
    op.create_table('approvals',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('expense_id', sa.Integer(), nullable=False),
    sa.Column('approver_id', sa.Integer(), nullable=False),
    sa.Column('sequence', sa.Integer(), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('comments', sa.Text(), nullable=True),
    sa.Column('decided_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint("status IN ('Pending', 'Approved', 'Rejected')", name='chk_approvals_status'),
    sa.CheckConstraint('sequence > 0', name='chk_approval_sequence_positive'),
    sa.ForeignKeyConstraint(['approver_id'], ['users.id'], ),
    sa.ForeignKeyConstraint(['expense_id'], ['expenses.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('expense_id', 'approver_id', name='uq_approvals_expense_approver')
    )
    op.create_index('idx_approvals_expense', 'approvals', ['expense_id'], unique=False)
    op.create_index('idx_approvals_approver', 'approvals', ['approver_id', 'status'], unique=False)

    # 6. approval_history (append-only)
    op.create_table('approval_history',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('expense_id', sa.Integer(), nullable=False),
    sa.Column('action', sa.String(length=50), nullable=False),
    sa.Column('performed_by', sa.Integer(), nullable=True),
    sa.Column('comments', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['expense_id'], ['expenses.id'], ),
    sa.ForeignKeyConstraint(['performed_by'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_approval_history_expense', 'approval_history', ['expense_id', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_approval_history_expense', table_name='approval_history')
    op.drop_table('approval_history')
    op.drop_index('idx_approvals_approver', table_name='approvals')
    op.drop_index('idx_approvals_expense', table_name='approvals')
    op.drop_table('approvals')
    op.drop_index('idx_expenses_submitter', table_name='expenses')
    op.drop_table('expenses')
    op.drop_table('rule_approvers')
    op.drop_table('approval_rules')
    op.drop_index('idx_users_manager', table_name='users')
    op.drop_index('idx_users_company', table_name='users')
    op.drop_table('users')
    op.drop_table('companies')
