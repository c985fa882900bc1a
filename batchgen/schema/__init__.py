"""ORM model registry; importing this package attaches every table to ``Base.metadata``."""

from .audit import PromptLog
from .credits import CreditAccount, CreditTransaction, CreditTransactionKind
from .jobs import GenerationArtifact, GenerationJob
from .notifications import InAppNotification
from .references import ReferenceSource, ReferenceSummaryCache

__all__ = ["PromptLog", "CreditAccount", "CreditTransaction", "CreditTransactionKind", "GenerationArtifact", "GenerationJob", "InAppNotification", "ReferenceSource", "ReferenceSummaryCache"]
