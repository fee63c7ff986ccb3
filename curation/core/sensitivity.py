"""
Sensitivity policy resolution - maps a declared sensitivity level to access rules and required validators.
Pure functions, no state.
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple, Union

from .errors import InvalidSensitivityLevel
from .schema import SensitivityLevel, ValidatorRole


@dataclass(frozen=True)
class SensitivityPolicy:
    """Access and validation requirements derived from a sensitivity level."""
    level: SensitivityLevel
    access_restrictions: Tuple[str, ...]
    access_requirements: Tuple[str, ...]
    required_validator_roles: Tuple[ValidatorRole, ...]
    sharing_restrictions: Tuple[Dict[str, str], ...]

    @property
    def requires_knowledge_keeper(self) -> bool:
        return requires_knowledge_keeper(self.level)


_REQUIRED_ROLES = {
    SensitivityLevel.PUBLIC: (ValidatorRole.CULTURAL_EXPERT,),
    SensitivityLevel.COMMUNITY_ONLY: (ValidatorRole.CULTURAL_EXPERT,),
    SensitivityLevel.RESTRICTED: (ValidatorRole.CULTURAL_EXPERT, ValidatorRole.HISTORIAN),
    SensitivityLevel.SACRED: (
        ValidatorRole.CULTURAL_EXPERT,
        ValidatorRole.HISTORIAN,
        ValidatorRole.TRADITIONAL_KNOWLEDGE_KEEPER,
    ),
}

_RESTRICTIONS = {
    SensitivityLevel.PUBLIC: (),
    SensitivityLevel.COMMUNITY_ONLY: ('Requires community membership',),
    SensitivityLevel.RESTRICTED: ('Requires cultural representative approval', 'Limited sharing'),
    SensitivityLevel.SACRED: (
        'Sacred content - restricted access',
        'No commercial use',
        'Cultural protocols required',
    ),
}

_REQUIREMENTS = {
    SensitivityLevel.PUBLIC: (),
    SensitivityLevel.COMMUNITY_ONLY: ('Community membership verification',),
    SensitivityLevel.RESTRICTED: ('Cultural representative endorsement', 'Purpose statement'),
    SensitivityLevel.SACRED: (
        'Traditional knowledge keeper approval',
        'Cultural protocol training',
        'Community elder endorsement',
    ),
}

# Levels whose records cannot be published without a knowledge-keeper consultation
_KEEPER_GATED = {SensitivityLevel.RESTRICTED, SensitivityLevel.SACRED}


def parse_sensitivity_level(value: Union[str, SensitivityLevel]) -> SensitivityLevel:
    """Coerce a wire value into a SensitivityLevel, raising InvalidSensitivityLevel."""
    if isinstance(value, SensitivityLevel):
        return value
    try:
        return SensitivityLevel(value)
    except ValueError:
        valid = [level.value for level in SensitivityLevel]
        raise InvalidSensitivityLevel(f"sensitivity level must be one of: {valid}, got {value!r}")


def requires_knowledge_keeper(level: Union[str, SensitivityLevel]) -> bool:
    return parse_sensitivity_level(level) in _KEEPER_GATED


def determine_sharing_restrictions(level: SensitivityLevel) -> List[Dict[str, str]]:
    restrictions = [
        {
            'restriction_type': 'attribution_required',
            'description': 'Attribution to cultural community required',
            'enforcement': 'automatic',
        }
    ]

    if level in _KEEPER_GATED:
        restrictions.append({
            'restriction_type': 'no_commercial_use',
            'description': 'Commercial use prohibited',
            'enforcement': 'community_moderated',
        })

    if level == SensitivityLevel.SACRED:
        restrictions.append({
            'restriction_type': 'sacred_content',
            'description': 'Sacred cultural content - special protocols apply',
            'enforcement': 'expert_reviewed',
        })

    return restrictions


def resolve_sensitivity_policy(level: Union[str, SensitivityLevel]) -> SensitivityPolicy:
    """
    Resolve the fixed policy for a sensitivity level.

    Args:
        level: Declared sensitivity (enum member or its wire name)

    Returns:
        SensitivityPolicy with restrictions, requirements and required validator roles

    Raises:
        InvalidSensitivityLevel: level is not one of public, community_only, restricted, sacred
    """
    parsed = parse_sensitivity_level(level)
    return SensitivityPolicy(
        level=parsed,
        access_restrictions=_RESTRICTIONS[parsed],
        access_requirements=_REQUIREMENTS[parsed],
        required_validator_roles=_REQUIRED_ROLES[parsed],
        sharing_restrictions=tuple(determine_sharing_restrictions(parsed)),
    )
