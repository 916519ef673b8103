"""
Scene Graph Flattening

MagicaVoxel files written by version 0.99+ describe model placement with a
node graph: transform nodes (nTRN) point at a group (nGRP) or shape (nSHP)
node, and shape nodes reference model indices.

Only a flat placement is derived here: each model takes the translation and
name of the transform node directly above its shape node. Parent transforms
are not composed; hosts that need the full hierarchy can walk
ChunkTree.transforms / groups / shapes themselves.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .reader import ChunkTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Placement:
    """Flat placement of one model."""
    model_id: int
    translation: Tuple[int, int, int] = (0, 0, 0)
    name: Optional[str] = None


def flatten_scene(tree: ChunkTree) -> Dict[int, Placement]:
    """
    Map model indices to their flat placement.

    Args:
        tree: Parsed chunk tree

    Returns:
        Dictionary of model index -> Placement. Models not referenced by any
        shape node are absent.
    """
    parents = {node.child_id: node for node in tree.transforms}
    placements: Dict[int, Placement] = {}

    for shape in tree.shapes:
        transform = parents.get(shape.node_id)
        if transform is None:
            logger.debug("Shape node %d has no parent transform", shape.node_id)
            continue

        for model_id in shape.model_ids:
            if model_id in placements:
                # Instanced model, the first placement wins
                continue
            placements[model_id] = Placement(
                model_id=model_id,
                translation=transform.translation,
                name=transform.name,
            )

    return placements
