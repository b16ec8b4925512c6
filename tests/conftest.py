"""Test configuration and fixtures."""

import pytest

from tests.helpers import LAYER_A, LAYER_B, LAYER_C, write_image_tree


@pytest.fixture
def three_layer_image(tmp_path):
    """Unpacked image A <- B <- C with overlapping files."""
    return write_image_tree(
        tmp_path / "image",
        [
            (LAYER_A, None, {"etc/os-release": b"base", "a.txt": b"1"}),
            (LAYER_B, LAYER_A, {"etc/os-release": b"updated", "b.txt": b"22"}),
            (LAYER_C, LAYER_B, {"c.txt": b"333"}),
        ],
    )


def pytest_configure(config):
    """Configure pytest markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as end-to-end flattening of an image archive"
    )
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")
