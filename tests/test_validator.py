"""Tests for name:version and layer ID validation."""

import pytest

from image_flattener.exceptions import InvalidNameVersionError
from image_flattener.utils.digest import random_layer_id
from image_flattener.utils.validator import is_valid_layer_id, parse_name_version


def test_parse_name_version():
    """Test parsing name:version strings."""
    assert parse_name_version("myimage:1.0") == ("myimage", "1.0")
    assert parse_name_version("my-app:latest") == ("my-app", "latest")

    # Registry host with port keeps its colon in the name
    assert parse_name_version("localhost:5000/app:v2") == ("localhost:5000/app", "v2")


@pytest.mark.parametrize(
    "value",
    ["badname", "", "app:", ":1.0", "app:1.0\n", None, 5],
)
def test_parse_name_version_invalid(value):
    """Strings outside the <name>:<version> grammar are rejected."""
    with pytest.raises(InvalidNameVersionError):
        parse_name_version(value)


def test_is_valid_layer_id():
    """Layer IDs are 64 lowercase hex characters."""
    assert is_valid_layer_id("0" * 64)
    assert is_valid_layer_id(random_layer_id())

    assert not is_valid_layer_id("A" * 64)
    assert not is_valid_layer_id("0" * 63)
    assert not is_valid_layer_id("sha256:" + "0" * 64)
    assert not is_valid_layer_id(None)
