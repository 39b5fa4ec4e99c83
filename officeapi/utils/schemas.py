from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from .errors import InvalidLineFilter

# canonical column order of the `lines` table, also the order of every SELECT list
COLUMNS: tuple[str, ...] = ("season", "episode", "character", "line")

# `season` and `episode` are INTEGER columns
INT4_MAX = 2_147_483_647

ColumnNumber = Annotated[int, Field(gt=0, le=INT4_MAX)]


def normalize_character(name: str) -> str:
    """
    Bring a character name to the capitalization used in the database.

    Only the first character is upper-cased, the rest is kept as given, so
    `"michael"` and `"Michael"` both become `"Michael"`.

    Args:
        name: Character name as received from the client.

    Returns:
        The normalized name.
    """
    return name[:1].upper() + name[1:]


class LineFilter(BaseModel):
    """Column constraints narrowing which lines may be selected, ANDed together."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    season: Optional[ColumnNumber] = None
    episode: Optional[ColumnNumber] = None
    character: Optional[str] = Field(default=None, min_length=1)

    @field_validator("season", "episode", mode="before")
    @classmethod
    def reject_coercible_numbers(cls, value: Any) -> Any:
        # pydantic would otherwise accept True as 1, 2.0 as 2 and "1_0" as 10
        if isinstance(value, (bool, float)):
            raise ValueError("Input should be a whole number")
        if isinstance(value, str) and not (value.isascii() and value.isdigit()):
            raise ValueError("Input should contain digits only")
        return value

    @field_validator("character")
    @classmethod
    def normalize(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        # PostgreSQL text cannot hold NUL
        if "\x00" in value:
            raise ValueError("Input should not contain NUL characters")
        return normalize_character(value)

    @classmethod
    def parse(cls, **filters: Any) -> "LineFilter":
        """
        Build a filter from untrusted input.

        Raises:
            InvalidLineFilter: If any value is not usable as a filter.
        """
        try:
            return cls(**filters)
        except ValidationError as exc:
            raise InvalidLineFilter(
                [
                    {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
                    for error in exc.errors()
                ]
            ) from exc

    def bound(self) -> dict[str, Any]:
        """Return the constrained columns in table order."""
        return self.model_dump(exclude_none=True)


class Line(BaseModel):
    """A line of the script, holding only the columns that were selected."""

    season: Optional[int] = None
    episode: Optional[int] = None
    character: Optional[str] = None
    line: Optional[str] = None
