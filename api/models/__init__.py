"""Central model registry: import all models so Alembic autodiscover works."""

from api.database import Base  # noqa: F401

from api.models.company import Company  # noqa: F401
from api.models.user import User  # noqa: F401
from api.models.approval_rule import ApprovalRule, RuleApprover  # noqa: F401
from api.models.expense import Expense  # noqa: F401
from api.models.approval import Approval  # noqa: F401
from api.models.approval_history import ApprovalHistoryEntry  # noqa: F401
