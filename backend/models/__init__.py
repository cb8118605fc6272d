"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Models Package                                                              ║
║                                                                              ║
║  Exporte tous les modèles pour import facile                                 ║
║  from models import ScriptNode, LeadStatus, QualifyRdvCommand, etc.          ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Script de qualification
from .script import (
    NodeType,
    ActionTriggerType,
    RecommendedAction,
    ScriptCategory,
    ScriptNodeOption,
    ActionTrigger,
    ScriptNode,
    ScriptDefinition,
    ScriptPublish,
    HistoryEntry,
    ExecutionState,
    StartExecutionRequest,
    AnswerNodeRequest,
)

# Lead (workflow post-RDV)
from .lead import (
    LeadStatus,
    TERMINAL_STATUSES,
    RdvIntent,
    NonHonoreAction,
    CallResult,
    LostReason,
    LeadActivityType,
    QualifyRdvCommand,
    HandleNonHonoreCommand,
    validate_qualify_rdv_command,
    validate_non_honore_command,
)

__all__ = [
    # Script
    "NodeType",
    "ActionTriggerType",
    "RecommendedAction",
    "ScriptCategory",
    "ScriptNodeOption",
    "ActionTrigger",
    "ScriptNode",
    "ScriptDefinition",
    "ScriptPublish",
    "HistoryEntry",
    "ExecutionState",
    "StartExecutionRequest",
    "AnswerNodeRequest",
    # Lead
    "LeadStatus",
    "TERMINAL_STATUSES",
    "RdvIntent",
    "NonHonoreAction",
    "CallResult",
    "LostReason",
    "LeadActivityType",
    "QualifyRdvCommand",
    "HandleNonHonoreCommand",
    "validate_qualify_rdv_command",
    "validate_non_honore_command",
]
