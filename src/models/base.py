"""Base model for the NAP registry data models.

Models are validated on construction and assignment and reject unknown
fields, so rows that do not match the sheet layout fail loudly.
"""

from pydantic import BaseModel, ConfigDict


class BaseDataModel(BaseModel):
    """Base class for all data models.

    Example:
        >>> class Cabinet(BaseDataModel):
        ...     code: str
        ...     ports: int
        >>> Cabinet(code="NAP-7", ports=16).model_dump()
        {'code': 'NAP-7', 'ports': 16}
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        validate_assignment=True,
        strict=False,
        extra="forbid",
        frozen=False,
    )
