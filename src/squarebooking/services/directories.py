"""User and square lookups used when materializing a booking."""

from typing import TYPE_CHECKING

from pydantic import ValidationError

from squarebooking.models.booking import Square, User
from squarebooking.models.errors import NotFoundError

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService


class UserDirectory:
    """Read-only access to registered users."""

    USERS_TABLE = "users"

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def get(self, user_id: str) -> User:
        """Get a user by ID.

        Raises:
            NotFoundError: If no usable user record exists.
        """
        item = self.db.get_item(self.USERS_TABLE, {"user_id": str(user_id)})
        if not item:
            raise NotFoundError("User", str(user_id))
        try:
            return User.model_validate(item)
        except ValidationError as e:
            raise NotFoundError("User", str(user_id)) from e


class SquareDirectory:
    """Read-only access to bookable squares."""

    SQUARES_TABLE = "squares"

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def get(self, square_id: str) -> Square:
        """Get a square by ID.

        Raises:
            NotFoundError: If no usable square record exists.
        """
        item = self.db.get_item(self.SQUARES_TABLE, {"square_id": str(square_id)})
        if not item:
            raise NotFoundError("Square", str(square_id))
        try:
            return Square(
                square_id=item["square_id"],
                name=item.get("name", item["square_id"]),
                capacity=int(item.get("capacity", 1)),
            )
        except (ValidationError, ValueError) as e:
            raise NotFoundError("Square", str(square_id)) from e
