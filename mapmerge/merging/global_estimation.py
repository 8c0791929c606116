"""Global alignment of many grids from pairwise matches.

Pairwise matching yields, for some pairs of grids, a similarity transform
and the inlier correspondences supporting it. This module turns those into
one transform per grid, all expressed in the frame of grid 0:

    1. Initialization: keep pairs above a confidence threshold, require the
       resulting match graph to be connected, and chain pairwise transforms
       along its maximum-confidence spanning tree rooted at grid 0.
    2. Refinement: jointly re-estimate all similarity transforms from every
       inlier correspondence by iteratively reweighted least squares with a
       robust loss. With the parametrization
            T = [[a, -b, tx],
                 [b,  a, ty],
                 [0,  0,  1]]
       the alignment residual T_i p - T_j q is linear in (a, b, tx, ty), so
       each reweighting step is a single linear solve.

Transforms map cell coordinates of a grid into cell coordinates of grid 0.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import breadth_first_order, connected_components, minimum_spanning_tree

from .estimate_transform import PairwiseMatch

logger = logging.getLogger(__name__)

# Residual scale floor for the robust loss (cells)
MIN_RESIDUAL_SCALE = 0.5
MAD_TO_SIGMA = 1.4826


def robust_weights(u: NDArray[np.float64], loss: str = "huber") -> NDArray[np.float64]:
    """
    IRLS weights for normalized residuals.

    Args:
        u: Normalized residuals r / (σ·c).
        loss: 'huber' or 'cauchy'.

    Returns:
        Weight for each residual, in (0, 1].

    Examples:
        >>> robust_weights(np.array([0.5, 2.0]))
        array([1. , 0.5])
    """
    abs_u = np.abs(u)

    if loss == "huber":
        # Huber: w = min(1, 1/|u|)
        return np.where(abs_u <= 1.0, 1.0, 1.0 / np.maximum(abs_u, 1e-12))
    elif loss == "cauchy":
        # Cauchy: w = 1 / (1 + u²)
        return 1.0 / (1.0 + u ** 2)

    raise ValueError(f"Unknown loss function: {loss}")


def _strongest_matches(
    matches: Sequence[PairwiseMatch], min_confidence: float
) -> Dict[Tuple[int, int], PairwiseMatch]:
    """Best usable match per unordered pair of grids."""
    best: Dict[Tuple[int, int], PairwiseMatch] = {}
    for m in matches:
        if m.src == m.dst or m.confidence < min_confidence or m.confidence <= 0:
            continue
        if m.H is None or np.shape(m.H) != (3, 3) or not np.all(np.isfinite(m.H)):
            continue
        key = (min(m.src, m.dst), max(m.src, m.dst))
        if key not in best or m.confidence > best[key].confidence:
            best[key] = m
    return best


def spanning_tree_transforms(
    n_images: int, matches: Sequence[PairwiseMatch], min_confidence: float
) -> Optional[List[NDArray[np.float64]]]:
    """
    Chain pairwise transforms along the maximum-confidence spanning tree.

    Args:
        n_images: Number of grids.
        matches: Pairwise matches.
        min_confidence: Pairs below this confidence are ignored.

    Returns:
        One transform per grid into the frame of grid 0, or None if the
        confident matches do not connect all grids.
    """
    best = _strongest_matches(matches, min_confidence)

    rows, cols, costs = [], [], []
    for (i, j), m in best.items():
        rows.append(i)
        cols.append(j)
        # MST over 1/confidence is the maximum-confidence spanning tree
        costs.append(1.0 / m.confidence)
    graph = csr_matrix((costs, (rows, cols)), shape=(n_images, n_images))

    n_components, labels = connected_components(graph, directed=False)
    if n_components > 1:
        logger.info(
            "match graph has %d components (labels %s), cannot align all grids",
            n_components,
            labels.tolist(),
        )
        return None

    tree = minimum_spanning_tree(graph)
    order, predecessors = breadth_first_order(
        tree, 0, directed=False, return_predecessors=True
    )

    transforms: List[Optional[NDArray[np.float64]]] = [None] * n_images
    transforms[0] = np.eye(3)
    for node in order[1:]:
        node = int(node)
        parent = int(predecessors[node])
        m = best[(min(node, parent), max(node, parent))]
        # map node -> parent
        if m.src == node:
            H = np.asarray(m.H, dtype=np.float64)
        else:
            try:
                H = np.linalg.inv(m.H)
            except np.linalg.LinAlgError:
                logger.info("pairwise transform %d -> %d is singular", m.src, m.dst)
                return None
        transforms[node] = transforms[parent] @ H

    return transforms


def refine_similarity(
    transforms: Sequence[NDArray[np.float64]],
    matches: Sequence[PairwiseMatch],
    min_confidence: float,
    n_iter: int = 5,
    loss: str = "huber",
    loss_param: float = 1.5,
) -> Optional[List[NDArray[np.float64]]]:
    """
    Jointly refine similarity transforms from all inlier correspondences.

    Grid 0 stays fixed at the identity. Rotation, uniform scale and
    translation of every other grid are re-estimated.

    Args:
        transforms: Initial transforms into grid 0 (only their count and
                    grid 0's role matter, the problem is linear).
        matches: Pairwise matches with inlier points.
        min_confidence: Pairs below this confidence are ignored.
        n_iter: Number of reweighting iterations.
        loss: Robust loss for reweighting ('huber' or 'cauchy').
        loss_param: Tuning constant c in u = r / (σ·c).

    Returns:
        Refined transforms, or None if the correspondences do not determine
        every grid.
    """
    n_images = len(transforms)
    n_params = 4 * (n_images - 1)
    if n_params == 0:
        return [np.eye(3)]

    blocks_A, blocks_b = [], []
    for m in _strongest_matches(matches, min_confidence).values():
        if m.num_inliers == 0:
            continue
        A_m, b_m = _correspondence_rows(m, n_images)
        blocks_A.append(A_m)
        blocks_b.append(b_m)

    if not blocks_A:
        return None

    A = np.vstack(blocks_A)
    b = np.concatenate(blocks_b)
    if A.shape[0] < n_params:
        return None

    weights = np.ones(A.shape[0])
    x = None
    for _ in range(n_iter):
        sqrt_w = np.sqrt(weights)
        x, _, rank, _ = np.linalg.lstsq(A * sqrt_w[:, None], b * sqrt_w, rcond=None)
        if rank < n_params:
            logger.info("correspondences leave %d of %d parameters free", n_params - rank, n_params)
            return None

        r = (A @ x - b).reshape(-1, 2)
        errors = np.hypot(r[:, 0], r[:, 1])
        scale = max(MAD_TO_SIGMA * np.median(errors), MIN_RESIDUAL_SCALE)
        weights = np.repeat(robust_weights(errors / (loss_param * scale), loss), 2)

    if x is None or not np.all(np.isfinite(x)):
        return None

    refined = [np.eye(3)]
    for a, b_, tx, ty in x.reshape(-1, 4):
        refined.append(
            np.array([[a, -b_, tx], [b_, a, ty], [0.0, 0.0, 1.0]], dtype=np.float64)
        )
    return refined


def _correspondence_rows(
    m: PairwiseMatch, n_images: int
) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Linear rows of T_src p - T_dst q = 0 for every inlier pair (p, q).

    Rows alternate x and y components. Terms of grid 0, whose transform is
    fixed to the identity, are moved to the right-hand side.
    """
    n_params = 4 * (n_images - 1)
    k = m.num_inliers
    A = np.zeros((2 * k, n_params))
    b = np.zeros(2 * k)

    for index, points, sign in ((m.src, m.src_points, 1.0), (m.dst, m.dst_points, -1.0)):
        px = np.asarray(points, dtype=np.float64)[:, 0]
        py = np.asarray(points, dtype=np.float64)[:, 1]
        if index == 0:
            # identity: T p = p
            b[0::2] -= sign * px
            b[1::2] -= sign * py
            continue
        c = 4 * (index - 1)
        # x row: a*px - b*py + tx
        A[0::2, c] += sign * px
        A[0::2, c + 1] += -sign * py
        A[0::2, c + 2] += sign
        # y row: b*px + a*py + ty
        A[1::2, c] += sign * py
        A[1::2, c + 1] += sign * px
        A[1::2, c + 3] += sign

    return A, b


def estimate_global_transforms(
    n_images: int,
    matches: Sequence[PairwiseMatch],
    min_confidence: float,
    refine: bool = True,
) -> Optional[List[NDArray[np.float64]]]:
    """
    Transforms of all grids into the frame of grid 0.

    Args:
        n_images: Number of grids.
        matches: Pairwise matches.
        min_confidence: Pairs below this confidence are ignored.
        refine: Run the joint least-squares refinement after chaining.

    Returns:
        One transform per grid, or None if the grids are not all connected
        by confident matches.
    """
    transforms = spanning_tree_transforms(n_images, matches, min_confidence)
    if transforms is None:
        return None

    if refine:
        refined = refine_similarity(transforms, matches, min_confidence)
        if refined is None:
            logger.info("refinement underdetermined, keeping chained transforms")
        else:
            transforms = refined

    return transforms
