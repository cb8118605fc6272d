"""
Politique de recommandation de fin de script.

Fonction pure: aucun accès base, même entrée => même sortie.
Ordre de priorité strict, la première règle qui matche gagne.
"""

from typing import List, Optional, Sequence, Tuple

from config import round_half_up
from models.script import ActionTrigger, ActionTriggerType, RecommendedAction, HistoryEntry

BOOK_RDV_THRESHOLD = 75
FOLLOW_UP_THRESHOLD = 50
SUGGESTED_RDV_THRESHOLD = 50
COLD_THRESHOLD = 30


def score_percentage(total_score: int, max_possible_score: int) -> float:
    if max_possible_score <= 0:
        return 0.0
    return total_score / max_possible_score * 100


def generate_recommendation(
    total_score: int,
    max_possible_score: int,
    triggered_actions: Sequence[ActionTrigger],
    history: Optional[List[HistoryEntry]] = None,
) -> Tuple[str, RecommendedAction]:
    """
    Returns (texte de recommandation, action)

    1. DISQUALIFY déclenché               -> DISQUALIFY
    2. SUGGEST_RDV déclenché et pct >= 50 -> BOOK_RDV
    3. pct >= 75                          -> BOOK_RDV
    4. pct >= 50                          -> FOLLOW_UP
    5. FLAG_COLD déclenché ou pct < 30    -> DISQUALIFY
    6. sinon                              -> FOLLOW_UP

    history est accepté pour les règles futures, il n'influence pas le résultat.
    """
    pct = score_percentage(total_score, max_possible_score)
    shown = round_half_up(pct)
    types = {a.type for a in triggered_actions}

    if ActionTriggerType.DISQUALIFY in types:
        return (
            "Lead non qualifié: critère rédhibitoire détecté pendant l'appel. Clôturer le dossier.",
            RecommendedAction.DISQUALIFY,
        )

    if ActionTriggerType.SUGGEST_RDV in types and pct >= SUGGESTED_RDV_THRESHOLD:
        return (
            f"Lead très qualifié ({shown}%), intérêt fort exprimé. Proposer un rendez-vous maintenant.",
            RecommendedAction.BOOK_RDV,
        )

    if pct >= BOOK_RDV_THRESHOLD:
        return (
            f"Excellent score ({shown}%), lead chaud. Fixer un RDV immédiatement.",
            RecommendedAction.BOOK_RDV,
        )

    if pct >= FOLLOW_UP_THRESHOLD:
        return (
            f"Score correct ({shown}%). Intérêt présent, planifier un rappel pour consolider.",
            RecommendedAction.FOLLOW_UP,
        )

    if ActionTriggerType.FLAG_COLD in types or pct < COLD_THRESHOLD:
        return (
            f"Score faible ({shown}%), prospect froid. Relance tardive ou clôture.",
            RecommendedAction.DISQUALIFY,
        )

    return (
        f"Score moyen ({shown}%). Prospect à faire mûrir: programmer un rappel et envoyer de la documentation.",
        RecommendedAction.FOLLOW_UP,
    )
