import json
import os
import tempfile
import unittest

from yolo_live.metadata import (
    COCO_CLASSES,
    NUM_KEYPOINTS,
    POSE_KEYPOINT_NAMES,
    POSE_SKELETON,
    POSE_SKELETON_EDGES,
    class_name,
    load_class_names,
    parse_names_metadata,
)
from yolo_live.models import DEFAULT_MODELS, ModelSpec, get_model, load_model_specs
from yolo_live.types import ModelType


class TestModelRegistry(unittest.TestCase):
    def test_default_models(self) -> None:
        self.assertEqual([m.id for m in DEFAULT_MODELS], ["yolo11n", "yolo11n-seg", "yolo11n-pose"])
        self.assertEqual(
            [m.type for m in DEFAULT_MODELS],
            [ModelType.DETECTION, ModelType.SEGMENTATION, ModelType.POSE],
        )
        for m in DEFAULT_MODELS:
            self.assertEqual(m.target_size, (640, 640))

    def test_get_model(self) -> None:
        self.assertEqual(get_model("yolo11n-pose").file, "models/yolo11n-pose.onnx")
        with self.assertRaises(KeyError):
            get_model("yolov8x")

    def test_spec_validation(self) -> None:
        spec = ModelSpec(id="m", name="M", file="m.onnx", type="segmentation", input_shape=(1, 3, 480, 640))
        self.assertIs(spec.type, ModelType.SEGMENTATION)
        self.assertEqual(spec.target_size, (640, 480))
        with self.assertRaises(ValueError):
            ModelSpec(id="m", name="M", file="m.onnx", type="detection", input_shape=(2, 3, 640, 640))
        with self.assertRaises(ValueError):
            ModelSpec(id="m", name="M", file="m.onnx", type="detection", input_shape=(1, 1, 640, 640))
        with self.assertRaises(ValueError):
            ModelSpec(id="m", name="M", file="m.onnx", type="detection", input_shape=(1, 3, 640))
        with self.assertRaises(ValueError):
            ModelSpec(id="m", name="M", file="m.onnx", type="classification")


class TestLoadModelSpecs(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)

    def _write(self, payload) -> str:
        path = os.path.join(self._tmp.name, "models.json")
        with open(path, "w", encoding="utf-8") as f:
            if isinstance(payload, str):
                f.write(payload)
            else:
                json.dump(payload, f)
        return path

    def _model(self, **overrides):
        m = {"id": "custom", "name": "Custom", "file": "models/custom.onnx", "type": "pose"}
        m.update(overrides)
        return m

    def test_list_payload(self) -> None:
        specs = load_model_specs(self._write([self._model(input_shape=[1, 3, 320, 320])]))
        self.assertEqual(len(specs), 1)
        self.assertEqual(specs[0].type, ModelType.POSE)
        self.assertEqual(specs[0].target_size, (320, 320))
        self.assertEqual(get_model("custom", specs).name, "Custom")

    def test_models_object(self) -> None:
        specs = load_model_specs(self._write({"models": [self._model()]}))
        self.assertEqual(specs[0].input_shape, (1, 3, 640, 640))

    def test_rejects_bad_payloads(self) -> None:
        bad = [
            "{not json",
            {"models": [self._model()], "extra": 1},
            [self._model(labels=["a"])],
            [self._model(type="classification")],
            [self._model(input_shape="640")],
            [{"id": "x", "name": "X", "type": "detection"}],
            [self._model(), self._model()],
        ]
        for payload in bad:
            with self.subTest(payload=payload):
                with self.assertRaises(ValueError):
                    load_model_specs(self._write(payload))

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_model_specs(os.path.join(self._tmp.name, "nope.json"))


class TestMetadata(unittest.TestCase):
    def test_coco_tables(self) -> None:
        self.assertEqual(len(COCO_CLASSES), 80)
        self.assertEqual(COCO_CLASSES[0], "person")
        self.assertEqual(COCO_CLASSES[79], "toothbrush")
        self.assertEqual(len(POSE_KEYPOINT_NAMES), NUM_KEYPOINTS)
        self.assertEqual(POSE_KEYPOINT_NAMES[0], "nose")

    def test_skeleton(self) -> None:
        self.assertEqual(len(POSE_SKELETON), 19)
        flat = [i for edge in POSE_SKELETON_EDGES for i in edge]
        self.assertEqual(min(flat), 0)
        self.assertEqual(max(flat), NUM_KEYPOINTS - 1)
        # Left ankle to left knee.
        self.assertEqual(POSE_SKELETON_EDGES[0], (15, 13))

    def test_class_name_fallback(self) -> None:
        self.assertEqual(class_name(2), "car")
        self.assertEqual(class_name(80), "unknown")
        self.assertEqual(class_name(-1), "unknown")
        self.assertEqual(class_name(1, ["a", "b"]), "b")
        self.assertEqual(class_name(5, {5: "widget"}), "widget")
        self.assertEqual(class_name(6, {5: "widget"}), "unknown")

    def test_load_class_names(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "metadata.yaml")
            with open(path, "w", encoding="utf-8") as f:
                f.write("task: detect\nnames:\n  0: person\n  1: 'fork lift'\n  # comment\n  2: \"pallet\"\nimgsz:\n- 640\n")
            self.assertEqual(load_class_names(path), {0: "person", 1: "fork lift", 2: "pallet"})

    def test_parse_names_metadata(self) -> None:
        self.assertEqual(parse_names_metadata("{0: 'person', 1: 'bicycle'}"), {0: "person", 1: "bicycle"})
        self.assertEqual(parse_names_metadata("['a', 'b']"), {0: "a", 1: "b"})
        with self.assertRaises(ValueError):
            parse_names_metadata("{0: person")
        with self.assertRaises(ValueError):
            parse_names_metadata("42")


if __name__ == "__main__":
    unittest.main()
