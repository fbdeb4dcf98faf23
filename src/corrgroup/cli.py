"""
Command line entry point: ``corrgroup MODEL SCENE [options]``.

Keep side effects here; core logic stays importable and testable.
"""

from __future__ import annotations

import argparse
import logging
from typing import Sequence

from corrgroup.cloud import CloudLoadError, load_cloud
from corrgroup.config import RecognitionConfig
from corrgroup.pipeline import recognize
from corrgroup.report import format_instances
from corrgroup.visualize import show

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    d = RecognitionConfig()
    ap = argparse.ArgumentParser(
        prog="corrgroup",
        description="Recognise a rigid model in a scene by Hough-voting correspondence grouping. "
                    "Distance options are multiples of the model resolution.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    ap.add_argument("model", help="model point cloud file (.pcd, .ply, ...)")
    ap.add_argument("scene", help="scene point cloud file")
    ap.add_argument("-k", dest="show_keypoints", action="store_true", help="show used keypoints")
    ap.add_argument("-c", dest="show_correspondences", action="store_true",
                    help="show used correspondences")
    ap.add_argument("--model_ss", type=float, default=d.model_ss, help="model uniform sampling radius")
    ap.add_argument("--scene_ss", type=float, default=d.scene_ss, help="scene uniform sampling radius")
    ap.add_argument("--rf_rad", type=float, default=d.rf_rad, help="reference frame radius")
    ap.add_argument("--descr_rad", type=float, default=d.descr_rad, help="descriptor radius")
    ap.add_argument("--cg_size", type=float, default=d.cg_size, help="cluster (Hough bin) size")
    ap.add_argument("--cg_thresh", type=float, default=d.cg_thresh, help="clustering threshold")
    ap.add_argument("--match_thresh", type=float, default=d.match_thresh,
                    help="squared descriptor distance below which a match is kept")
    ap.add_argument("--normal_k", type=int, default=d.normal_k,
                    help="neighbours used for normal estimation")
    ap.add_argument("--no-interpolation", dest="use_interpolation", action="store_false",
                    help="vote into a single bin instead of spreading over 8")
    ap.add_argument("--distance-weight", dest="use_distance_weight", action="store_true",
                    help="weight votes by 1 - distance / match_thresh")
    ap.add_argument("--ransac_thresh", type=float, default=None,
                    help="enable per-cluster RANSAC with this inlier distance")
    ap.add_argument("--workers", type=int, default=d.workers, help="worker threads")
    ap.add_argument("--no-viewer", dest="viewer", action="store_false",
                    help="do not open the viewer window")
    ap.add_argument("--log-level", default="INFO",
                    choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="logging level")
    return ap


def config_from_args(args: argparse.Namespace) -> RecognitionConfig:
    return RecognitionConfig(
        model_ss=args.model_ss,
        scene_ss=args.scene_ss,
        rf_rad=args.rf_rad,
        descr_rad=args.descr_rad,
        cg_size=args.cg_size,
        cg_thresh=args.cg_thresh,
        match_thresh=args.match_thresh,
        normal_k=args.normal_k,
        use_interpolation=args.use_interpolation,
        use_distance_weight=args.use_distance_weight,
        ransac_thresh=args.ransac_thresh,
        workers=args.workers,
        show_keypoints=args.show_keypoints,
        show_correspondences=args.show_correspondences,
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s: %(message)s")

    try:
        config = config_from_args(args)
    except ValueError as exc:
        logger.error("Invalid option: %s", exc)
        return 2

    logger.info("Recognition begin")
    try:
        model = load_cloud(args.model)
        scene = load_cloud(args.scene)
    except CloudLoadError as exc:
        logger.error("Error loading cloud: %s", exc)
        return 1

    result = recognize(model, scene, config)
    print(format_instances(result.clusters))

    if args.viewer:
        show(result, show_keypoints=config.show_keypoints,
             show_correspondences=config.show_correspondences)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
