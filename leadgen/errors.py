"""Exceptions raised by the lead pipeline."""


class InvalidInput(ValueError):
    """Bad borough or area. Raised before any dataset is fetched."""


class InvalidKey(ValueError):
    """A borough/block/lot triple that cannot form a BBL."""


class StageFetchError(RuntimeError):
    """Every page or batch of a stage's fetch failed."""

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage
