"""
leadgen — NYC parcel lead pipeline.

Joins MapPLUTO with ACRIS, DOB, 311 and HPD open data per BBL and scores
each lot for seller likelihood.
"""

from .errors import InvalidInput, StageFetchError
from .pipeline import run, run_snapshot

__all__ = ["InvalidInput", "StageFetchError", "run", "run_snapshot"]
