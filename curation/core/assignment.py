"""
Validator assignment - determines which validator roles a record still needs and issues validation requests.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .collaborators import NullValidatorDirectory, ValidatorDirectory
from .schema import CurationRecord, ValidationRequest, ValidatorRole
from .sensitivity import resolve_sensitivity_policy
from ..util.logging import logger

PENDING = "pending"
FULFILLED = "fulfilled"

VALIDATION_CRITERIA: Dict[ValidatorRole, List[str]] = {
    ValidatorRole.CULTURAL_EXPERT: ['Cultural accuracy', 'Traditional knowledge validation', 'Community appropriateness'],
    ValidatorRole.HISTORIAN: ['Historical accuracy', 'Source verification', 'Factual consistency'],
    ValidatorRole.TRADITIONAL_KNOWLEDGE_KEEPER: ['Sacred knowledge protocols', 'Cultural sensitivity', 'Traditional authenticity'],
    ValidatorRole.ACADEMIC: ['Academic rigor', 'Research methodology', 'Citation accuracy'],
}


def criteria_for_role(role: ValidatorRole) -> List[str]:
    return list(VALIDATION_CRITERIA.get(ValidatorRole(role), ['General validation']))


@dataclass
class AssignmentOutcome:
    outstanding: List[ValidationRequest]
    created: List[ValidationRequest]
    warnings: List[str] = field(default_factory=list)


def role_satisfied(record: CurationRecord, role: ValidatorRole) -> bool:
    """A role is satisfied by an expert consultation of that type.

    Knowledge-keeper consultations also satisfy the traditional_knowledge_keeper role.
    """
    role = ValidatorRole(role)
    if any(ValidatorRole(c.expert_type) == role for c in record.expert_consultations):
        return True
    if role == ValidatorRole.TRADITIONAL_KNOWLEDGE_KEEPER and record.knowledge_keeper_consultations:
        return True
    return False


class ValidatorAssignmentEngine:
    """Issues one outstanding request per unsatisfied required role, idempotently."""

    def __init__(self, directory: Optional[ValidatorDirectory] = None):
        self.directory = directory or NullValidatorDirectory()

    def required_roles(self, record: CurationRecord) -> List[ValidatorRole]:
        return list(resolve_sensitivity_policy(record.sensitivity_level).required_validator_roles)

    def missing_roles(self, record: CurationRecord) -> List[ValidatorRole]:
        return [role for role in self.required_roles(record) if not role_satisfied(record, role)]

    def all_roles_satisfied(self, record: CurationRecord) -> bool:
        return not self.missing_roles(record)

    def outstanding_requests(self, record: CurationRecord) -> List[ValidationRequest]:
        return [r for r in record.validation_requests if r.status == PENDING]

    def sync_fulfilled(self, record: CurationRecord) -> List[ValidationRequest]:
        """Mark pending requests whose role has since been satisfied."""
        fulfilled = []
        for request in record.validation_requests:
            if request.status == PENDING and role_satisfied(record, request.role):
                request.status = FULFILLED
                fulfilled.append(request)
        return fulfilled

    def assign_validators(self, record: CurationRecord) -> AssignmentOutcome:
        """
        Create validation requests for required roles that are neither satisfied nor already pending.

        Mutates record.validation_requests. Notification of the created
        requests is left to the caller so it can happen outside the record lock.
        """
        self.sync_fulfilled(record)

        pending_roles = {ValidatorRole(r.role) for r in self.outstanding_requests(record)}
        created = []
        warnings = []

        for role in self.missing_roles(record):
            if role in pending_roles:
                continue

            validator_id = None
            try:
                validator_id = self.directory.lookup(role)
            except Exception as e:
                warnings.append(f"validator lookup failed for role {role.value}: {e}")
                logger.log_dispatch_failure("validator_lookup", record.id, str(e))

            request = ValidationRequest(
                request_id=str(uuid.uuid4()),
                curation_id=record.id,
                role=role,
                criteria=criteria_for_role(role),
                status=PENDING,
                created_at=datetime.now(),
                validator_id=validator_id,
            )
            record.validation_requests.append(request)
            pending_roles.add(role)
            created.append(request)

        outstanding = self.outstanding_requests(record)
        if created:
            logger.log_validation_requests(record.id, [r.role.value for r in created], len(outstanding))

        return AssignmentOutcome(outstanding=outstanding, created=created, warnings=warnings)
