"""
Scripts modèles installés à la première utilisation d'une organisation.

- OF_STANDARD: organisme de formation, parcours finançable CPF / OPCO
- CFA: centre de formation d'apprentis (contrat d'apprentissage)
"""

import uuid
from typing import Dict, List

from models.script import (
    ActionTrigger,
    ActionTriggerType,
    NodeType,
    ScriptCategory,
    ScriptNode,
    ScriptNodeOption,
    ScriptPublish,
)


def _options(pairs: List[tuple], next_id: str) -> List[ScriptNodeOption]:
    return [
        ScriptNodeOption(value=value, label=label, score_impact=impact, next_node_id=next_id)
        for value, label, impact in pairs
    ]


def _of_standard() -> ScriptPublish:
    ids: Dict[str, str] = {k: str(uuid.uuid4()) for k in
                           ("dispo", "formation", "financement", "situation", "calendrier", "rdv", "motivation")}

    nodes = [
        ScriptNode(
            id=ids["dispo"], ordre=1, type=NodeType.YES_NO, score_weight=5,
            question="Bonjour, je vous appelle suite à votre demande d'information sur une formation. "
                     "Avez-vous quelques minutes pour en parler ?",
            help_text="Si le prospect est pressé, proposer un rappel plutôt que d'insister.",
            yes_next_node_id=ids["formation"],
            action_trigger=ActionTrigger(type=ActionTriggerType.FLAG_COLD, condition="no",
                                         message="Prospect indisponible"),
        ),
        ScriptNode(
            id=ids["formation"], ordre=2, type=NodeType.OPEN_TEXT, score_weight=5,
            question="Quelle formation vous intéresse en particulier ?",
            help_text="Reformuler le besoin pour le valider avec le prospect.",
            default_next_id=ids["financement"],
        ),
        ScriptNode(
            id=ids["financement"], ordre=3, type=NodeType.CHOICE, score_weight=10,
            question="Avez-vous déjà une idée du financement ?",
            help_text="Le financement détermine le parcours administratif.",
            options=_options([
                ("CPF", "CPF (Mon Compte Formation)", 10),
                ("OPCO", "OPCO (employeur)", 8),
                ("FRANCE_TRAVAIL", "France Travail", 7),
                ("AUTO", "Autofinancement", 5),
                ("NE_SAIT_PAS", "Ne sait pas encore", 3),
            ], ids["situation"]),
            default_next_id=ids["situation"],
        ),
        ScriptNode(
            id=ids["situation"], ordre=4, type=NodeType.CHOICE, score_weight=5,
            question="Êtes-vous actuellement en poste ou en recherche d'emploi ?",
            options=_options([
                ("EN_POSTE", "Salarié", 5),
                ("RECHERCHE", "En recherche d'emploi", 4),
                ("INDEPENDANT", "Indépendant", 5),
                ("ETUDIANT", "Étudiant", 3),
            ], ids["calendrier"]),
            default_next_id=ids["calendrier"],
        ),
        ScriptNode(
            id=ids["calendrier"], ordre=5, type=NodeType.CHOICE, score_weight=10,
            question="Quand souhaitez-vous démarrer ?",
            help_text="Un démarrage rapide est un très bon signal.",
            options=_options([
                ("ASAP", "Dès que possible", 10),
                ("1_MOIS", "Dans le mois", 8),
                ("3_MOIS", "Dans les 3 mois", 5),
                ("PLUS_TARD", "Plus tard / pas décidé", 2),
            ], ids["rdv"]),
            default_next_id=ids["rdv"],
            action_trigger=ActionTrigger(type=ActionTriggerType.SUGGEST_RDV, condition="ASAP",
                                         message="Prospect pressé: proposer un RDV immédiat"),
        ),
        ScriptNode(
            id=ids["rdv"], ordre=6, type=NodeType.YES_NO, score_weight=15,
            question="Voulez-vous qu'on fixe un rendez-vous pour faire le point et lancer les démarches ?",
            help_text="Question clé: être direct.",
            yes_next_node_id=ids["motivation"],
            no_next_node_id=ids["motivation"],
            action_trigger=ActionTrigger(type=ActionTriggerType.SUGGEST_RDV, condition="yes",
                                         message="Le prospect accepte un RDV"),
        ),
        ScriptNode(
            id=ids["motivation"], ordre=7, type=NodeType.RATING, score_weight=10,
            question="De 1 à 5, quelle est votre motivation pour cette formation ?",
            help_text="4-5 = lead chaud, 1-2 = lead froid.",
        ),
    ]

    return ScriptPublish(
        name="Script OF - Qualification standard",
        description="Qualification pour organismes de formation (CPF / OPCO)",
        category=ScriptCategory.OF_STANDARD,
        root_node_id=ids["dispo"],
        nodes=nodes,
        is_default=True,
    )


def _cfa() -> ScriptPublish:
    ids: Dict[str, str] = {k: str(uuid.uuid4()) for k in
                           ("dispo", "diplome", "entreprise", "age", "rentree", "rdv")}

    nodes = [
        ScriptNode(
            id=ids["dispo"], ordre=1, type=NodeType.YES_NO, score_weight=5,
            question="Bonjour, vous vous êtes renseigné sur une formation en apprentissage. "
                     "Êtes-vous disponible pour en discuter ?",
            yes_next_node_id=ids["diplome"],
            action_trigger=ActionTrigger(type=ActionTriggerType.FLAG_COLD, condition="no"),
        ),
        ScriptNode(
            id=ids["diplome"], ordre=2, type=NodeType.OPEN_TEXT, score_weight=5,
            question="Quel diplôme ou quelle certification visez-vous ?",
            help_text="BTS, Licence pro, Bachelor, Master...",
            default_next_id=ids["entreprise"],
        ),
        ScriptNode(
            id=ids["entreprise"], ordre=3, type=NodeType.CHOICE, score_weight=15,
            question="Avez-vous trouvé une entreprise d'accueil ?",
            help_text="Critère principal de l'apprentissage.",
            options=_options([
                ("OUI_SIGNE", "Oui, contrat signé", 15),
                ("OUI_EN_COURS", "En discussion avec une entreprise", 10),
                ("EN_RECHERCHE", "Encore en recherche", 5),
                ("BESOIN_AIDE", "Besoin d'aide pour trouver", 3),
            ], ids["age"]),
            default_next_id=ids["age"],
            action_trigger=ActionTrigger(type=ActionTriggerType.SUGGEST_RDV, condition="OUI_SIGNE",
                                         message="Employeur trouvé: planifier l'inscription"),
        ),
        ScriptNode(
            id=ids["age"], ordre=4, type=NodeType.CHOICE, score_weight=10,
            question="Quel âge avez-vous ?",
            help_text="L'apprentissage est ouvert jusqu'à 29 ans révolus, sauf exceptions.",
            options=_options([
                ("MOINS_18", "Moins de 18 ans", 10),
                ("18_25", "18-25 ans", 10),
                ("26_29", "26-29 ans", 8),
                ("PLUS_30", "30 ans ou plus", 3),
            ], ids["rentree"]),
            default_next_id=ids["rentree"],
        ),
        ScriptNode(
            id=ids["rentree"], ordre=5, type=NodeType.CHOICE, score_weight=10,
            question="Pour quand envisagez-vous de démarrer ?",
            options=_options([
                ("PROCHAINE_RENTREE", "Prochaine rentrée", 10),
                ("CETTE_ANNEE", "Dans l'année", 7),
                ("RENSEIGNEMENT", "Simple renseignement", 3),
            ], ids["rdv"]),
            default_next_id=ids["rdv"],
            action_trigger=ActionTrigger(type=ActionTriggerType.SUGGEST_RDV, condition="PROCHAINE_RENTREE"),
        ),
        ScriptNode(
            id=ids["rdv"], ordre=6, type=NodeType.YES_NO, score_weight=15,
            question="Souhaitez-vous un rendez-vous pour préparer l'inscription et la recherche d'entreprise ?",
            action_trigger=ActionTrigger(type=ActionTriggerType.SUGGEST_RDV, condition="yes"),
        ),
    ]

    return ScriptPublish(
        name="Script CFA - Qualification apprentissage",
        description="Qualification pour centres de formation d'apprentis",
        category=ScriptCategory.CFA,
        root_node_id=ids["dispo"],
        nodes=nodes,
        is_default=True,
    )


def build_template(category: ScriptCategory) -> ScriptPublish:
    if category == ScriptCategory.CFA:
        return _cfa()
    return _of_standard()
