"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Modèles Script de qualification (arbre décisionnel)                         ║
║                                                                              ║
║  Un script = une collection indexée de nœuds, reliés UNIQUEMENT par id.      ║
║  Arêtes possibles: yes_next_node_id / no_next_node_id (YES_NO),              ║
║  options[].next_node_id (CHOICE), default_next_id (tous types).              ║
║  L'intégrité référentielle est vérifiée à la publication, pas au parcours.   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Optional, List, Dict
from pydantic import BaseModel, Field
from enum import Enum


class NodeType(str, Enum):
    """Types de nœuds"""
    YES_NO = "YES_NO"
    CHOICE = "CHOICE"
    OPEN_TEXT = "OPEN_TEXT"
    RATING = "RATING"
    INFO = "INFO"          # Simple étape d'information, jamais scorée


class ActionTriggerType(str, Enum):
    SUGGEST_RDV = "SUGGEST_RDV"
    FLAG_COLD = "FLAG_COLD"
    SUGGEST_CALLBACK = "SUGGEST_CALLBACK"
    DISQUALIFY = "DISQUALIFY"
    HIGHLIGHT = "HIGHLIGHT"


class RecommendedAction(str, Enum):
    BOOK_RDV = "BOOK_RDV"
    FOLLOW_UP = "FOLLOW_UP"
    DISQUALIFY = "DISQUALIFY"


class ScriptCategory(str, Enum):
    OF_STANDARD = "OF_STANDARD"   # Organisme de formation (CPF / OPCO)
    CFA = "CFA"                   # Centre de formation d'apprentis


class ScriptNodeOption(BaseModel):
    value: str
    label: str = ""
    next_node_id: Optional[str] = None
    score_impact: int = 0


class ActionTrigger(BaseModel):
    """
    Déclencheur attaché à un nœud.
    condition: "any", "yes", "no", ou une valeur de réponse exacte
    """
    type: ActionTriggerType
    condition: str
    message: Optional[str] = None


class ScriptNode(BaseModel):
    id: str
    question: str
    help_text: Optional[str] = None
    type: NodeType
    ordre: int = 0
    is_required: bool = True
    score_weight: int = 0
    options: Optional[List[ScriptNodeOption]] = None
    yes_next_node_id: Optional[str] = None
    no_next_node_id: Optional[str] = None
    default_next_id: Optional[str] = None
    action_trigger: Optional[ActionTrigger] = None


class ScriptDefinition(BaseModel):
    """Script complet tel que stocké (nœuds embarqués, triés par ordre)"""
    id: str
    organization_id: str = ""
    name: str
    description: str = ""
    category: ScriptCategory = ScriptCategory.OF_STANDARD
    root_node_id: Optional[str] = None
    nodes: List[ScriptNode] = []
    version: int = 1
    is_active: bool = True
    is_default: bool = False
    created_at: str = ""
    created_by: str = "system"

    def node_index(self) -> Dict[str, ScriptNode]:
        return {n.id: n for n in self.nodes}

    def ordered_nodes(self) -> List[ScriptNode]:
        return sorted(self.nodes, key=lambda n: n.ordre)


class ScriptPublish(BaseModel):
    """Payload de publication d'un script (nouvelle version)"""
    name: str = Field(..., min_length=1)
    description: str = ""
    category: ScriptCategory = ScriptCategory.OF_STANDARD
    root_node_id: Optional[str] = None
    nodes: List[ScriptNode]
    is_default: bool = False


# ==================== EXECUTION ====================

class HistoryEntry(BaseModel):
    node_id: str
    question: str
    answer: str
    score_earned: int


class ExecutionState(BaseModel):
    """État renvoyé au cockpit d'appel après chaque étape"""
    execution_id: str
    script_name: str
    current_node: Optional[ScriptNode] = None
    answered_count: int = 0
    total_score: int = 0
    max_possible_score: int = 0
    score_percentage: Optional[int] = None
    is_complete: bool = False
    recommendation: Optional[str] = None
    recommended_action: Optional[RecommendedAction] = None
    triggered_actions: List[ActionTrigger] = []
    history: List[HistoryEntry] = []


class StartExecutionRequest(BaseModel):
    lead_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    script_id: Optional[str] = None        # None = script par défaut de l'organisation
    organization_id: Optional[str] = None


class AnswerNodeRequest(BaseModel):
    node_id: str = Field(..., min_length=1)
    answer: str
