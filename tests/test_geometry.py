import unittest

import numpy as np

from yolo_live.geometry import (
    MIN_BOX_SIZE,
    cxcywh_to_xyxy,
    iou,
    iou_one_to_many,
    meets_min_size,
    min_size_mask,
    scale_box,
    scale_boxes,
)
from yolo_live.types import BoundingBox


def _random_box(rng: np.random.Generator) -> BoundingBox:
    x1, y1 = rng.uniform(0, 500, size=2)
    w, h = rng.uniform(1, 200, size=2)
    return BoundingBox(float(x1), float(y1), float(x1 + w), float(y1 + h))


class TestIoU(unittest.TestCase):
    def test_identity_is_one(self) -> None:
        box = BoundingBox(10, 20, 110, 70)
        self.assertAlmostEqual(iou(box, box), 1.0)

    def test_disjoint_is_zero(self) -> None:
        a = BoundingBox(0, 0, 10, 10)
        b = BoundingBox(20, 20, 30, 30)
        self.assertEqual(iou(a, b), 0.0)
        # Touching edges have no intersection area either.
        c = BoundingBox(10, 0, 20, 10)
        self.assertEqual(iou(a, c), 0.0)

    def test_partial_overlap(self) -> None:
        a = BoundingBox(0, 0, 100, 100)
        b = BoundingBox(0, 0, 100, 60)
        self.assertAlmostEqual(iou(a, b), 0.6)

    def test_symmetric(self) -> None:
        rng = np.random.default_rng(0)
        for _ in range(200):
            a, b = _random_box(rng), _random_box(rng)
            self.assertAlmostEqual(iou(a, b), iou(b, a))
            self.assertGreaterEqual(iou(a, b), 0.0)
            self.assertLessEqual(iou(a, b), 1.0)

    def test_zero_area_boxes_do_not_raise(self) -> None:
        point = BoundingBox(5, 5, 5, 5)
        self.assertEqual(iou(point, point), 0.0)

    def test_vectorised_matches_scalar(self) -> None:
        rng = np.random.default_rng(1)
        boxes = [_random_box(rng) for _ in range(20)]
        arr = np.array([b.as_xyxy() for b in boxes])
        out = iou_one_to_many(arr[0], arr)
        expected = [iou(boxes[0], b) for b in boxes]
        self.assertTrue(np.allclose(out, expected))

    def test_vectorised_empty(self) -> None:
        out = iou_one_to_many(np.array([0, 0, 1, 1.0]), np.empty((0, 4)))
        self.assertEqual(out.shape, (0,))


class TestBoundingBox(unittest.TestCase):
    def test_rejects_inverted_corners(self) -> None:
        with self.assertRaises(ValueError):
            BoundingBox(10, 0, 5, 10)
        with self.assertRaises(ValueError):
            BoundingBox(0, 10, 5, 5)

    def test_size_helpers(self) -> None:
        box = BoundingBox(1, 2, 11, 7)
        self.assertEqual(box.width, 10)
        self.assertEqual(box.height, 5)
        self.assertEqual(box.area, 50)


class TestScaling(unittest.TestCase):
    def test_cxcywh_to_xyxy(self) -> None:
        out = cxcywh_to_xyxy(np.array([[320.0, 320.0, 100.0, 50.0]]))
        self.assertTrue(np.allclose(out, [[270, 295, 370, 345]]))

    def test_scale_box_independent_axes(self) -> None:
        box = BoundingBox(270, 270, 370, 370)
        scaled = scale_box(box, (640, 640), (1280, 720))
        self.assertAlmostEqual(scaled.x1, 540.0)
        self.assertAlmostEqual(scaled.y1, 303.75)
        self.assertAlmostEqual(scaled.x2, 740.0)
        self.assertAlmostEqual(scaled.y2, 416.25)

    def test_scale_box_clamps_to_frame(self) -> None:
        box = BoundingBox(-10, -5, 700, 650)
        scaled = scale_box(box, (640, 640), (1280, 720))
        self.assertEqual(scaled.as_xyxy(), (0.0, 0.0, 1280.0, 720.0))

    def test_scale_boxes_does_not_mutate_input(self) -> None:
        boxes = np.array([[10.0, 10.0, 20.0, 20.0]])
        scale_boxes(boxes, (10, 10), (100, 100))
        self.assertTrue(np.array_equal(boxes, [[10.0, 10.0, 20.0, 20.0]]))

    def test_invalid_model_size(self) -> None:
        with self.assertRaises(ValueError):
            scale_boxes(np.zeros((1, 4)), (0, 640), (100, 100))


class TestMinSize(unittest.TestCase):
    def test_default_floor(self) -> None:
        self.assertEqual(MIN_BOX_SIZE, 20.0)
        self.assertTrue(meets_min_size(BoundingBox(0, 0, 20, 20)))
        self.assertFalse(meets_min_size(BoundingBox(0, 0, 19.9, 100)))
        self.assertFalse(meets_min_size(BoundingBox(0, 0, 100, 10)))

    def test_mask_disabled_with_zero_floor(self) -> None:
        boxes = np.array([[0, 0, 1, 1], [0, 0, 50, 50]], dtype=np.float64)
        self.assertTrue(np.array_equal(min_size_mask(boxes, 0.0), [True, True]))
        self.assertTrue(np.array_equal(min_size_mask(boxes, 20.0), [False, True]))


if __name__ == "__main__":
    unittest.main()
