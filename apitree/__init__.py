"""apitree - API group hierarchy and OpenAPI import reconciliation."""

__version__ = "0.1.0"
