"""
Approval rules: definition storage and resolution.

A rule targets exactly one user and lists that user's approvers in order.
Users without a rule fall back to their direct manager as sole approver.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from api.models.approval_rule import ApprovalRule, RuleApprover
from api.models.enums import Role
from api.models.user import User
from api.services.errors import (
    DuplicateRule,
    NoApproverConfigured,
    UserNotFound,
    ValidationError,
)

logger = structlog.get_logger()

APPROVER_ROLES = {Role.MANAGER.value, Role.ADMIN.value}
FALLBACK_RULE_NAME = "Direct manager approval"


@dataclass
class RuleDefinition:
    rule: ApprovalRule
    approvers: list[RuleApprover] = field(default_factory=list)


@dataclass
class ResolvedApprover:
    user_id: int
    sequence: int


@dataclass
class ResolvedRule:
    """The rule an expense is routed under, explicit or manager fallback."""

    name: str
    is_sequential: bool
    min_approval_percentage: int
    approvers: list[ResolvedApprover]
    rule_id: Optional[int] = None

    @property
    def is_fallback(self) -> bool:
        return self.rule_id is None


async def get_user(session: AsyncSession, user_id: int) -> User:
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise UserNotFound(f"User {user_id} not found")
    return user


async def get_rule_for_user(
    session: AsyncSession, user_id: int
) -> Optional[RuleDefinition]:
    """Rule targeting user_id with its approvers ordered by sequence, or None."""
    result = await session.execute(
        select(ApprovalRule).where(ApprovalRule.applies_to_user_id == user_id)
    )
    rule = result.scalar_one_or_none()
    if not rule:
        return None

    approvers_result = await session.execute(
        select(RuleApprover)
        .where(RuleApprover.rule_id == rule.id)
        .order_by(RuleApprover.sequence)
    )
    return RuleDefinition(rule=rule, approvers=list(approvers_result.scalars().all()))


def _validate_rule_settings(
    min_approval_percentage: int, approver_ids: Sequence[int], target_user_id: int
) -> None:
    if not 1 <= min_approval_percentage <= 100:
        raise ValidationError(
            "min_approval_percentage must be between 1 and 100",
            field="min_approval_percentage",
        )
    if not approver_ids:
        raise ValidationError("A rule needs at least one approver", field="approvers")
    if len(set(approver_ids)) != len(approver_ids):
        raise ValidationError("Approvers must be distinct", field="approvers")
    if target_user_id in approver_ids:
        raise ValidationError(
            "A user cannot approve their own expenses", field="approvers"
        )


async def create_rule(
    session: AsyncSession,
    name: Optional[str],
    applies_to_user_id: int,
    is_sequential: bool,
    min_approval_percentage: int,
    approver_ids: Sequence[int],
    company_id: Optional[int] = None,
) -> RuleDefinition:
    """
    Create a rule for one target user. Approver order defines sequence 1..n.

    When company_id is given the target user must belong to it. Approvers
    must be Managers or Admins of the target user's company.
    """
    approver_ids = list(approver_ids)
    _validate_rule_settings(min_approval_percentage, approver_ids, applies_to_user_id)

    target = await get_user(session, applies_to_user_id)
    if company_id is not None and target.company_id != company_id:
        raise UserNotFound(f"User {applies_to_user_id} not found")

    approvers_result = await session.execute(
        select(User).where(User.id.in_(approver_ids))
    )
    approver_map = {u.id: u for u in approvers_result.scalars().all()}
    invalid = [
        aid
        for aid in approver_ids
        if aid not in approver_map
        or approver_map[aid].company_id != target.company_id
        or approver_map[aid].role not in APPROVER_ROLES
    ]
    if invalid:
        raise ValidationError(
            "Approvers must be existing managers or admins of the same company",
            field="approvers",
            invalid_approver_ids=invalid,
        )

    if await get_rule_for_user(session, applies_to_user_id) is not None:
        raise DuplicateRule(
            f"An approval rule already applies to user {applies_to_user_id}"
        )

    rule = ApprovalRule(
        name=(name or "").strip() or f"Rule for {target.name}",
        applies_to_user_id=applies_to_user_id,
        is_sequential=is_sequential,
        min_approval_percentage=min_approval_percentage,
    )
    session.add(rule)
    try:
        await session.flush()
    except IntegrityError as exc:
        raise DuplicateRule(
            f"An approval rule already applies to user {applies_to_user_id}"
        ) from exc

    approvers = []
    for sequence, approver_id in enumerate(approver_ids, start=1):
        ra = RuleApprover(rule_id=rule.id, approver_user_id=approver_id, sequence=sequence)
        session.add(ra)
        approvers.append(ra)
    await session.flush()

    logger.info(
        "approval_rule_created",
        rule_id=rule.id,
        applies_to_user_id=applies_to_user_id,
        is_sequential=is_sequential,
        min_approval_percentage=min_approval_percentage,
        approvers=len(approvers),
    )
    return RuleDefinition(rule=rule, approvers=approvers)


async def resolve_rule(session: AsyncSession, submitter_id: int) -> ResolvedRule:
    """
    Find the rule that governs submitter_id's expenses.

    An explicit rule wins. Otherwise the submitter's manager becomes the
    single approver, provided the manager belongs to the submitter's
    company. Raises NoApproverConfigured otherwise.
    """
    definition = await get_rule_for_user(session, submitter_id)
    if definition is not None and definition.approvers:
        return ResolvedRule(
            rule_id=definition.rule.id,
            name=definition.rule.name,
            is_sequential=definition.rule.is_sequential,
            min_approval_percentage=definition.rule.min_approval_percentage,
            approvers=[
                ResolvedApprover(user_id=a.approver_user_id, sequence=a.sequence)
                for a in definition.approvers
            ],
        )

    submitter = await get_user(session, submitter_id)
    if submitter.manager_id is None:
        raise NoApproverConfigured(
            f"User {submitter_id} has no approval rule and no manager"
        )

    result = await session.execute(select(User).where(User.id == submitter.manager_id))
    manager = result.scalar_one_or_none()
    if manager is None or manager.company_id != submitter.company_id:
        logger.warning(
            "approval_rule_fallback_manager_invalid",
            submitter_id=submitter_id,
            manager_id=submitter.manager_id,
        )
        raise NoApproverConfigured(
            f"Manager of user {submitter_id} is not a member of their company"
        )

    logger.info(
        "approval_rule_fallback_to_manager",
        submitter_id=submitter_id,
        manager_id=submitter.manager_id,
    )
    return ResolvedRule(
        name=FALLBACK_RULE_NAME,
        is_sequential=False,
        min_approval_percentage=100,
        approvers=[ResolvedApprover(user_id=submitter.manager_id, sequence=1)],
    )
