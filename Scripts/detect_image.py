import argparse

import cv2

from yolo_live import PoseResult, SegmentationResult, default_decoder_config, draw_results, get_model, load_pipeline
from yolo_live.log import setup_logging
from yolo_live.metadata import load_class_names
from yolo_live.postprocess import with_thresholds


def read_image(path: str):
    img = cv2.imread(path)
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {path}")
    return img


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one YOLO model on a single image and print the results.")
    parser.add_argument("image", help="Path to an input image.")
    parser.add_argument("--model", default="yolo11n", help="Model id (yolo11n, yolo11n-seg, yolo11n-pose).")
    parser.add_argument("--model-path", default=None, help="Override the model file.")
    parser.add_argument(
        "--names",
        default=None,
        help="Ultralytics metadata.yaml with a `names:` block (overrides the names embedded in the model).",
    )
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold for NMS.")
    parser.add_argument("--out", default=None, help="Optional output path for the visualization.")
    parser.add_argument("--show", action="store_true", help="Show a window with the visualization.")
    args = parser.parse_args()

    setup_logging("INFO")

    class_names = None
    if args.names:
        class_names = load_class_names(args.names)
        if not class_names:
            raise ValueError(f"No class names found in {args.names}")

    spec = get_model(args.model)
    cfg = with_thresholds(default_decoder_config(spec.type), conf=args.conf, iou=args.iou)
    pipeline = load_pipeline(spec, model_path=args.model_path, decoder_cfg=cfg, class_names=class_names)

    img = read_image(args.image)
    results = pipeline(img)
    for res in results:
        extra = ""
        if isinstance(res, SegmentationResult) and res.mask is not None:
            extra = f" mask_px={int(res.mask.sum())}"
        elif isinstance(res, PoseResult):
            extra = f" visible_kpts={sum(kp.visible for kp in res.keypoints)}"
        print(res.class_name, f"{res.confidence:.3f}", tuple(round(v, 1) for v in res.as_xyxy()), extra)

    vis = draw_results(img, results)
    if args.out:
        if not cv2.imwrite(args.out, vis):
            raise RuntimeError(f"Failed to write output image: {args.out}")
    if args.show:
        cv2.imshow("yolo_live", vis)
        cv2.waitKey(0)
        cv2.destroyAllWindows()

    pipeline.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
