import unittest

import numpy as np

from yolo_live.metadata import NUM_KEYPOINTS
from yolo_live.postprocess import DecoderConfig, PoseDecoder, TensorShapeError
from yolo_live.types import ModelType, PoseResult


def _pose_tensor(candidates, n: int = 8) -> np.ndarray:
    """
    (1, 56, N) tensor. Each candidate is (cx, cy, w, h, conf, keypoints) where
    keypoints is a list of 17 (x, y, conf) triples.
    """

    t = np.zeros((1, 5 + NUM_KEYPOINTS * 3, n), dtype=np.float32)
    for i, (cx, cy, w, h, conf, kpts) in enumerate(candidates):
        t[0, 0:5, i] = [cx, cy, w, h, conf]
        for j, (x, y, c) in enumerate(kpts):
            t[0, 5 + j * 3 : 8 + j * 3, i] = [x, y, c]
    return t


def _keypoints(base_x: float = 300.0, base_y: float = 310.0):
    return [(base_x + j, base_y + j, 0.9 if j % 2 == 0 else 0.3) for j in range(NUM_KEYPOINTS)]


class TestPoseDecoder(unittest.TestCase):
    def test_single_person(self) -> None:
        t = _pose_tensor([(320, 320, 100, 200, 0.8, _keypoints())])
        results = PoseDecoder().decode(t, orig_size=(1280, 720), model_size=(640, 640))

        self.assertEqual(len(results), 1)
        r = results[0]
        self.assertIsInstance(r, PoseResult)
        self.assertEqual(r.kind, ModelType.POSE)
        self.assertEqual(r.class_id, 0)
        self.assertEqual(r.class_name, "person")
        self.assertAlmostEqual(r.confidence, 0.8, places=5)
        self.assertTrue(np.allclose(r.as_xyxy(), (540.0, 247.5, 740.0, 472.5)))

        self.assertEqual(len(r.keypoints), NUM_KEYPOINTS)
        k0 = r.keypoints[0]
        self.assertAlmostEqual(k0.x, 600.0, places=3)
        self.assertAlmostEqual(k0.y, 348.75, places=3)
        self.assertTrue(k0.visible)
        self.assertFalse(r.keypoints[1].visible)

    def test_visibility_matches_confidence(self) -> None:
        kpts = _keypoints()
        kpts[3] = (300, 300, 0.5)
        kpts[4] = (300, 300, 0.51)
        t = _pose_tensor([(320, 320, 100, 200, 0.8, kpts)])
        r = PoseDecoder().decode(t, (640, 640), (640, 640))[0]
        for kp in r.keypoints:
            self.assertEqual(kp.visible, kp.confidence > 0.5)
        self.assertFalse(r.keypoints[3].visible)
        self.assertTrue(r.keypoints[4].visible)

    def test_keypoints_not_clamped_to_box(self) -> None:
        kpts = _keypoints()
        kpts[16] = (700, -20, 0.9)
        t = _pose_tensor([(320, 320, 100, 200, 0.8, kpts)])
        r = PoseDecoder().decode(t, (1280, 720), (640, 640))[0]
        self.assertAlmostEqual(r.keypoints[16].x, 1400.0, places=3)
        self.assertAlmostEqual(r.keypoints[16].y, -22.5, places=3)

    def test_small_boxes_kept_by_default(self) -> None:
        t = _pose_tensor([(320, 320, 8, 10, 0.8, _keypoints())])
        self.assertEqual(len(PoseDecoder().decode(t, (640, 640), (640, 640))), 1)
        floor = PoseDecoder(DecoderConfig(min_box_size=20.0))
        self.assertEqual(floor.decode(t, (640, 640), (640, 640)), [])

    def test_low_confidence_and_bad_box_rejected(self) -> None:
        t = _pose_tensor(
            [
                (320, 320, 100, 200, 0.4, _keypoints()),
                (100, 100, 0, 200, 0.9, _keypoints()),
            ]
        )
        self.assertEqual(PoseDecoder().decode(t, (640, 640), (640, 640)), [])

    def test_nms_ignores_class(self) -> None:
        t = _pose_tensor(
            [
                (320, 320, 100, 200, 0.7, _keypoints()),
                (322, 318, 100, 200, 0.9, _keypoints(0, 0)),
                (100, 100, 50, 100, 0.6, _keypoints()),
            ]
        )
        results = PoseDecoder().decode(t, (640, 640), (640, 640))
        self.assertEqual([round(r.confidence, 2) for r in results], [0.9, 0.6])
        # Keypoints follow their own candidate.
        self.assertAlmostEqual(results[0].keypoints[0].x, 0.0)

    def test_feature_count_checked(self) -> None:
        with self.assertRaises(TensorShapeError):
            PoseDecoder().decode(np.zeros((1, 84, 10), dtype=np.float32), (640, 640), (640, 640))


if __name__ == "__main__":
    unittest.main()
