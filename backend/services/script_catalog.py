"""
Catalogue des scripts de qualification

- Lecture: get_script_with_nodes / list_scripts / get_default_script
- Publication: validate_script_graph puis insertion d'une NOUVELLE version.
  Un script publié n'est jamais modifié en place: les exécutions en cours
  gardent la version qu'elles référencent.

Collection: qualification_scripts (nœuds embarqués, indexés par id)
"""

import logging
import uuid
from typing import Dict, List, Optional

from config import db, now_iso
from models.script import (
    NodeType,
    ScriptCategory,
    ScriptDefinition,
    ScriptNode,
    ScriptPublish,
)
from services.errors import CommandValidationError
from services.script_templates import build_template

logger = logging.getLogger("script_catalog")


# ════════════════════════════════════════════════════════════════════════════
# VALIDATION DU GRAPHE (à la publication uniquement)
# ════════════════════════════════════════════════════════════════════════════

def _edges(node: ScriptNode) -> List[str]:
    targets = [node.yes_next_node_id, node.no_next_node_id, node.default_next_id]
    for option in node.options or []:
        targets.append(option.next_node_id)
    return [t for t in targets if t]


def _find_cycle(start_id: str, index: Dict[str, ScriptNode]) -> Optional[List[str]]:
    """DFS itératif, retourne le chemin du premier cycle rencontré"""
    visiting = set()
    done = set()
    path: List[str] = []
    stack = [(start_id, iter(_edges(index[start_id])))]
    visiting.add(start_id)
    path.append(start_id)

    while stack:
        node_id, children = stack[-1]
        child = next(children, None)
        if child is None:
            stack.pop()
            path.pop()
            visiting.discard(node_id)
            done.add(node_id)
            continue
        if child not in index or child in done:
            continue
        if child in visiting:
            return path[path.index(child):] + [child]
        visiting.add(child)
        path.append(child)
        stack.append((child, iter(_edges(index[child]))))

    return None


def validate_script_graph(root_node_id: Optional[str], nodes: List[ScriptNode]) -> List[str]:
    """
    Vérifie l'intégrité d'un arbre avant publication.
    Retourne la liste des problèmes (vide = publiable).
    """
    problems = []

    if not nodes:
        return ["Le script ne contient aucun nœud"]

    index: Dict[str, ScriptNode] = {}
    for node in nodes:
        if node.id in index:
            problems.append(f"Identifiant de nœud dupliqué: {node.id}")
        index[node.id] = node

    if root_node_id and root_node_id not in index:
        problems.append(f"Nœud racine introuvable: {root_node_id}")

    for node in nodes:
        for target in _edges(node):
            if target not in index:
                problems.append(f"Nœud {node.id}: référence vers un nœud inexistant ({target})")

        if node.type == NodeType.CHOICE:
            if not node.options:
                problems.append(f"Nœud {node.id}: un nœud CHOICE doit avoir des options")
            values = [o.value for o in node.options or []]
            if len(values) != len(set(values)):
                problems.append(f"Nœud {node.id}: valeurs d'options dupliquées")
            ceiling = max(node.score_weight, 0)
            for option in node.options or []:
                if option.score_impact < 0 or option.score_impact > ceiling:
                    problems.append(
                        f"Nœud {node.id}: score_impact {option.score_impact} de l'option "
                        f"'{option.value}' hors de [0, {ceiling}]"
                    )
        elif node.options:
            problems.append(f"Nœud {node.id}: options réservées aux nœuds CHOICE")

        if node.type != NodeType.YES_NO and (node.yes_next_node_id or node.no_next_node_id):
            problems.append(f"Nœud {node.id}: branches oui/non réservées aux nœuds YES_NO")

    if problems:
        return problems

    start = root_node_id or sorted(nodes, key=lambda n: n.ordre)[0].id
    cycle = _find_cycle(start, index)
    if cycle:
        problems.append(f"Cycle détecté: {' -> '.join(cycle)}")

    return problems


# ════════════════════════════════════════════════════════════════════════════
# LECTURE
# ════════════════════════════════════════════════════════════════════════════

def _to_definition(doc: dict) -> ScriptDefinition:
    script = ScriptDefinition(**doc)
    script.nodes = script.ordered_nodes()
    return script


async def get_script_with_nodes(script_id: str) -> Optional[ScriptDefinition]:
    """Script + nœuds triés par ordre, None si inexistant"""
    doc = await db.qualification_scripts.find_one({"id": script_id}, {"_id": 0})
    if not doc:
        return None
    return _to_definition(doc)


async def list_scripts(organization_id: str, include_inactive: bool = False) -> List[dict]:
    query = {"organization_id": organization_id}
    if not include_inactive:
        query["is_active"] = True

    scripts = await db.qualification_scripts.find(
        query, {"_id": 0, "nodes": 0}
    ).sort("created_at", -1).to_list(200)
    return scripts


async def get_default_script(organization_id: str) -> Optional[ScriptDefinition]:
    """Script par défaut actif, sinon le premier script actif"""
    doc = await db.qualification_scripts.find_one(
        {"organization_id": organization_id, "is_default": True, "is_active": True},
        {"_id": 0}
    )
    if not doc:
        candidates = await db.qualification_scripts.find(
            {"organization_id": organization_id, "is_active": True},
            {"_id": 0}
        ).sort("created_at", 1).to_list(1)
        doc = candidates[0] if candidates else None

    if not doc:
        return None
    return _to_definition(doc)


async def count_scripts(organization_id: str) -> int:
    return await db.qualification_scripts.count_documents({"organization_id": organization_id})


# ════════════════════════════════════════════════════════════════════════════
# PUBLICATION
# ════════════════════════════════════════════════════════════════════════════

async def publish_script(
    data: ScriptPublish,
    organization_id: str,
    performed_by: str = "system"
) -> ScriptDefinition:
    """
    Publie un script: nouvelle version, les versions précédentes
    (même organisation + même nom) sont désactivées, jamais modifiées.
    """
    problems = validate_script_graph(data.root_node_id, data.nodes)
    if problems:
        logger.warning(f"[SCRIPT_PUBLISH] Refusé '{data.name}': {problems}")
        raise CommandValidationError("; ".join(problems), field="nodes")

    previous = await db.qualification_scripts.find(
        {"organization_id": organization_id, "name": data.name},
        {"_id": 0, "id": 1, "version": 1}
    ).to_list(1000)
    version = max([p.get("version", 1) for p in previous], default=0) + 1

    if data.is_default:
        await db.qualification_scripts.update_many(
            {"organization_id": organization_id, "is_default": True},
            {"$set": {"is_default": False}}
        )

    if previous:
        await db.qualification_scripts.update_many(
            {"organization_id": organization_id, "name": data.name, "is_active": True},
            {"$set": {"is_active": False, "superseded_at": now_iso()}}
        )

    script = ScriptDefinition(
        id=str(uuid.uuid4()),
        organization_id=organization_id,
        name=data.name,
        description=data.description,
        category=data.category,
        root_node_id=data.root_node_id,
        nodes=sorted(data.nodes, key=lambda n: n.ordre),
        version=version,
        is_active=True,
        is_default=data.is_default,
        created_at=now_iso(),
        created_by=performed_by,
    )

    await db.qualification_scripts.insert_one(script.model_dump(mode="json"))

    logger.info(
        f"[SCRIPT_PUBLISH] '{script.name}' v{version} publié | "
        f"org={organization_id} nodes={len(script.nodes)} by={performed_by}"
    )
    return script


async def seed_default_scripts(
    organization_id: str,
    category: ScriptCategory = ScriptCategory.OF_STANDARD
) -> Optional[ScriptDefinition]:
    """Installe le script modèle si l'organisation n'a encore aucun script"""
    if await count_scripts(organization_id) > 0:
        return None

    script = await publish_script(build_template(category), organization_id)
    logger.info(f"[SCRIPT_SEED] Script modèle {category.value} installé pour org={organization_id}")
    return script
