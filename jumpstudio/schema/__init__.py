"""ORM models; importing this package registers every table on `Base.metadata`."""

from jumpstudio.schema.artifacts import GenerationJobRow, StageOutputRow
from jumpstudio.schema.quotas import QuotaBucket, QuotaPeriod, QuotaUsageLog

__all__ = ["GenerationJobRow", "QuotaBucket", "QuotaPeriod", "QuotaUsageLog", "StageOutputRow"]
