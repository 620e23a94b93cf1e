"""Backend capabilities model."""

from pydantic import BaseModel, Field


class BackendCapabilities(BaseModel):
    """Flags indicating what a backend can execute."""

    transactions: bool = Field(
        default=True,
        description="Backend supports BEGIN/COMMIT/ROLLBACK",
    )
    right_join: bool = Field(
        default=True,
        description="Backend supports RIGHT JOIN",
    )

    def get_supported_features(self) -> list[str]:
        """Get list of supported feature names."""
        return [
            field_name
            for field_name, value in self.model_dump().items()
            if value is True
        ]

    def get_unsupported_features(self) -> list[str]:
        """Get list of unsupported feature names."""
        return [
            field_name
            for field_name, value in self.model_dump().items()
            if value is False
        ]
