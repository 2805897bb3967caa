from refsnap.snapshot.builder import SnapshotBuilder
from refsnap.snapshot.formatter import SnapshotFormatter
from refsnap.snapshot.options import SnapshotOptions
from refsnap.snapshot.token_budget import TokenBudget

__all__ = ["SnapshotBuilder", "SnapshotFormatter", "SnapshotOptions", "TokenBudget"]
