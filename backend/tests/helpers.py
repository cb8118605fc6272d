"""Fabriques de nœuds / scripts pour les tests"""

from models import ScriptNode, ScriptPublish


def node(node_id, type, weight=0, ordre=0, **fields) -> ScriptNode:
    return ScriptNode(id=node_id, question=f"Question {node_id}", type=type,
                      score_weight=weight, ordre=ordre, **fields)


def script_payload(nodes, root=None, name="Script test", is_default=False) -> ScriptPublish:
    return ScriptPublish(
        name=name,
        root_node_id=root or (nodes[0].id if nodes else None),
        nodes=nodes,
        is_default=is_default,
    )
