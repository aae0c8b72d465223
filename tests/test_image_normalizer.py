"""
Tests for menu photo normalization (resize + JPEG re-encode).
Images are generated in memory with Pillow.
"""
import asyncio
import base64
import io
import os
import shutil
import sys
import tempfile
import unittest
from pathlib import Path

from PIL import Image

# Ensure src/ is on path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / 'src'))

from menu_pipeline.errors import EncodingError
from menu_pipeline.image_normalizer import ImageNormalizer


def _encoded(size, mode="RGB", fmt="PNG"):
    buffer = io.BytesIO()
    Image.new(mode, size, "red" if mode == "RGB" else 128).save(buffer, fmt)
    return buffer.getvalue()


def _decode(payload):
    return Image.open(io.BytesIO(base64.b64decode(payload)))


class TestImageNormalizer(unittest.TestCase):

    def setUp(self):
        self.normalizer = ImageNormalizer(max_dimension=1536, quality=70, max_images=4)

    def test_landscape_downscaled_keeping_aspect(self):
        image = _decode(self.normalizer.normalize(_encoded((4000, 3000))))
        self.assertEqual(image.size, (1536, 1152))
        self.assertEqual(image.format, "JPEG")

    def test_portrait_downscaled_on_longer_edge(self):
        image = _decode(self.normalizer.normalize(_encoded((1000, 3072))))
        self.assertEqual(image.size, (500, 1536))

    def test_small_image_not_upscaled(self):
        image = _decode(self.normalizer.normalize(_encoded((800, 600))))
        self.assertEqual(image.size, (800, 600))

    def test_payload_has_no_data_url_header(self):
        payload = self.normalizer.normalize(_encoded((100, 100)))
        self.assertFalse(payload.startswith("data:"))
        base64.b64decode(payload, validate=True)

    def test_alpha_and_grayscale_converted(self):
        rgba = Image.new("RGBA", (50, 50), (255, 0, 0, 128))
        buffer = io.BytesIO()
        rgba.save(buffer, "PNG")
        self.assertEqual(_decode(self.normalizer.normalize(buffer.getvalue())).mode, "RGB")
        self.assertEqual(_decode(self.normalizer.normalize(_encoded((50, 50), mode="L"))).mode, "RGB")

    def test_file_path_input(self):
        temp_dir = tempfile.mkdtemp(prefix="menu_pal_test_images_")
        try:
            path = os.path.join(temp_dir, "menu.png")
            with open(path, "wb") as f:
                f.write(_encoded((2000, 1000)))
            self.assertEqual(_decode(self.normalizer.normalize(path)).size, (1536, 768))
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

    def test_undecodable_bytes(self):
        with self.assertRaises(EncodingError):
            self.normalizer.normalize(b"definitely not an image")


class TestNormalizeBatch(unittest.TestCase):

    def setUp(self):
        self.normalizer = ImageNormalizer(max_dimension=256, quality=70, max_images=4)

    def test_order_preserved(self):
        sizes = [(300, 100), (100, 300), (50, 50)]
        payloads = asyncio.run(self.normalizer.normalize_batch([_encoded(s) for s in sizes]))
        self.assertEqual([_decode(p).size for p in payloads], [(256, 85), (85, 256), (50, 50)])

    def test_truncated_to_four(self):
        payloads = asyncio.run(self.normalizer.normalize_batch([_encoded((20, 20))] * 6))
        self.assertEqual(len(payloads), 4)

    def test_one_bad_image_fails_whole_batch(self):
        batch = [_encoded((20, 20)), b"broken", _encoded((20, 20))]
        with self.assertRaises(EncodingError) as ctx:
            asyncio.run(self.normalizer.normalize_batch(batch))
        self.assertIn("2", ctx.exception.message)

    def test_empty_batch(self):
        with self.assertRaises(EncodingError):
            asyncio.run(self.normalizer.normalize_batch([]))


if __name__ == "__main__":
    unittest.main()
