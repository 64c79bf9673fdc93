import argparse
import logging

import cv2

from yolo_live import DEFAULT_MODELS, CycleScheduler, default_decoder_config, draw_results, load_model_specs, load_pipeline
from yolo_live.log import setup_logging
from yolo_live.metadata import load_class_names
from yolo_live.postprocess import with_thresholds


logger = logging.getLogger("run_camera")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Run YOLO detection / segmentation / pose on a live camera or video with frame dropping."
    )
    src = parser.add_mutually_exclusive_group()
    src.add_argument("--video", default=None, help="Path to an input video file.")
    src.add_argument("--webcam", type=int, default=0, help="Webcam index (default 0).")
    parser.add_argument("--model", default="yolo11n", help="Model id from the registry (e.g. yolo11n-seg).")
    parser.add_argument("--model-path", default=None, help="Override the model file for --model.")
    parser.add_argument("--registry", default=None, help="Optional JSON model registry replacing the defaults.")
    parser.add_argument(
        "--names",
        default=None,
        help="Ultralytics metadata.yaml with a `names:` block (overrides the names embedded in the model).",
    )
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold (default 0.5).")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold for NMS (default 0.4).")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    parser.add_argument("--log-file", default=None, help="Optional log file path.")
    args = parser.parse_args()

    setup_logging(args.log_level, args.log_file)

    class_names = None
    if args.names:
        class_names = load_class_names(args.names)
        if not class_names:
            raise ValueError(f"No class names found in {args.names}")

    models = tuple(load_model_specs(args.registry)) if args.registry else DEFAULT_MODELS
    onnx_providers = None
    if args.onnx_providers:
        onnx_providers = [p.strip() for p in str(args.onnx_providers).split(",") if p.strip()]

    def build(model_id: str, model_path=None):
        spec = next(s for s in models if s.id == model_id)
        cfg = with_thresholds(default_decoder_config(spec.type), conf=args.conf, iou=args.iou)
        return load_pipeline(
            spec, model_path=model_path, decoder_cfg=cfg, class_names=class_names, onnx_providers=onnx_providers
        )

    if args.model not in {s.id for s in models}:
        raise ValueError(f"Unknown model id {args.model!r}; known: {[s.id for s in models]}")

    if args.video is not None:
        cap = cv2.VideoCapture(args.video)
        if not cap.isOpened():
            raise FileNotFoundError(f"Could not open video: {args.video}")
    else:
        cap = cv2.VideoCapture(int(args.webcam))
        if not cap.isOpened():
            raise RuntimeError(f"Could not open webcam index: {args.webcam}")

    print("Keys: q/esc quit, 1..9 switch model:", ", ".join(f"{i + 1}={s.id}" for i, s in enumerate(models)))

    scheduler = CycleScheduler(build(args.model, args.model_path))
    try:
        while True:
            ok, frame = cap.read()
            if not ok or frame is None:
                break

            # Dropped while the previous cycle is still running.
            scheduler.submit(frame)

            vis = draw_results(frame, scheduler.latest_results)
            cv2.imshow("yolo_live", vis)
            key = cv2.waitKey(1) & 0xFF
            if key in (27, ord("q")):
                break
            if ord("1") <= key <= ord("9") and key - ord("1") < len(models):
                spec = models[key - ord("1")]
                if spec.id != scheduler.pipeline.spec.id:
                    logger.info("Switching model to %s", spec.id)
                    old = scheduler.pipeline
                    scheduler.cancel()
                    try:
                        new_pipeline = build(spec.id)
                    except (FileNotFoundError, ImportError, ValueError) as exc:
                        logger.error("Could not load %s: %s", spec.id, exc)
                        continue
                    scheduler.wait()
                    scheduler.set_pipeline(new_pipeline)
                    old.close()

    finally:
        stats = scheduler.stats
        scheduler.close()
        scheduler.pipeline.close()
        cap.release()
        cv2.destroyAllWindows()
        print(
            f"cycles submitted={stats.submitted} completed={stats.completed} "
            f"dropped={stats.dropped} discarded={stats.discarded}"
        )

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
