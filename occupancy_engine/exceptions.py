"""Project-wide exception types."""

class OccupancyEngineError(Exception):
    """Base exception for all engine errors."""


class DataSourceError(OccupancyEngineError):
    """Raised when site data cannot be read or fails schema checks."""


class SchemaError(DataSourceError):
    """Raised when required detection or covariate columns are missing."""


class InsufficientDataError(DataSourceError):
    """Raised when data does not meet minimum site requirements."""


class ConfigError(OccupancyEngineError):
    """Raised when configuration is missing or malformed."""


class ConfigValidationError(ConfigError):
    """Raised when validation fails for supplied configuration."""


class ModelFitError(OccupancyEngineError):
    """Raised when a single occupancy model fails to fit or converge."""


class SelectionError(OccupancyEngineError):
    """Raised when model selection cannot produce a usable confidence set."""


class EvaluationError(OccupancyEngineError):
    """Raised when a cross-validation fold or goodness-of-fit run fails."""


class DimensionMismatchError(OccupancyEngineError):
    """Raised when prediction columns and model weights disagree in length."""


class ResourceLimitError(OccupancyEngineError):
    """Raised when a run would exceed configured resource limits."""
