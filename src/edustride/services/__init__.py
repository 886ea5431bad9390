"""Application services shared by the API routers."""

from edustride.services.write_path import WriteOutcome, WritePathCoordinator

__all__ = ["WriteOutcome", "WritePathCoordinator"]
