"""Base Pydantic model with strict defaults for cohortqc configs.

All cohortqc config and stage schemas inherit from this base to ensure
consistent validation behavior across parameter, user, CLI, internal and
stage declarations.
"""

from pydantic import BaseModel, ConfigDict


class QCBaseModel(BaseModel):
    """Base model for all cohortqc configuration schemas.

    Enforces strict validation:
    - No extra fields allowed
    - Validates assignments after initialization
    - Uses Python mode (not JSON mode)
    """

    model_config = ConfigDict(
        extra='forbid',           # Reject unknown fields
        validate_assignment=True, # Validate on field mutation
        use_enum_values=True,     # Convert enums to values
        str_strip_whitespace=True,# Strip whitespace from strings
    )
