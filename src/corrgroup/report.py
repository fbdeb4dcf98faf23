"""Plain-text summary of recognised instances."""

from __future__ import annotations

from corrgroup.hough import PoseCluster


def format_instances(clusters: list[PoseCluster]) -> str:
    """
    Instance count, then per instance its correspondence count, R and t.

    Keep output formatting localized; solvers never print.
    """
    lines = [f"Model instances found: {len(clusters)}"]
    for i, c in enumerate(clusters, start=1):
        R = c.rotation
        t = c.translation
        lines += [
            "",
            f"    Instance {i}:",
            f"        Correspondences belonging to this instance: {len(c)} (votes {c.votes:.2f})",
            "",
            f"            | {R[0, 0]:6.3f} {R[0, 1]:6.3f} {R[0, 2]:6.3f} | ",
            f"        R = | {R[1, 0]:6.3f} {R[1, 1]:6.3f} {R[1, 2]:6.3f} | ",
            f"            | {R[2, 0]:6.3f} {R[2, 1]:6.3f} {R[2, 2]:6.3f} | ",
            "",
            f"        t = < {t[0]:0.3f}, {t[1]:0.3f}, {t[2]:0.3f} >",
        ]
    return "\n".join(lines)
