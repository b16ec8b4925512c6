"""Tests for layer metadata and repository models."""

import pytest

from image_flattener.exceptions import MalformedImageError
from image_flattener.models import LayerChain, LayerRecord, RepositoryPointer


def test_layer_record_round_trips_passthrough_fields():
    """Unknown fields are preserved verbatim."""
    data = {
        "id": "abc",
        "parent": "def",
        "created": "2015-06-01T12:00:00Z",
        "container": "123",
        "Size": 10,
        "config": {"Cmd": ["/bin/sh"]},
        "os": "linux",
    }
    record = LayerRecord.from_dict(data)

    assert record.id == "abc"
    assert record.parent == "def"
    assert record.size == 10
    assert record.extra == {"config": {"Cmd": ["/bin/sh"]}, "os": "linux"}
    assert record.to_dict() == data


def test_layer_record_root_has_no_parent():
    """A missing or null parent marks the root layer."""
    assert LayerRecord.from_dict({"id": "abc"}).parent is None
    assert LayerRecord.from_dict({"id": "abc", "parent": None}).parent is None


@pytest.mark.parametrize(
    "data",
    [
        [],
        "layer",
        {},
        {"id": ""},
        {"id": 5},
        {"id": "abc", "parent": 7},
        {"id": "abc", "parent": ""},
        {"id": "abc", "Size": "10"},
        {"id": "abc", "Size": True},
    ],
)
def test_layer_record_rejects_malformed(data):
    """Malformed records raise MalformedImageError instead of failing later."""
    with pytest.raises(MalformedImageError):
        LayerRecord.from_dict(data)


def test_layer_record_flattened_drops_lineage():
    """Flattening removes parent and container and rewrites id, Size and created."""
    record = LayerRecord.from_dict(
        {
            "id": "old",
            "parent": "p",
            "container": "c",
            "created": "then",
            "Size": 1,
            "config": {"Env": ["A=1"]},
        }
    )

    flat = record.flattened("new", 42, "now").to_dict()

    assert flat == {
        "id": "new",
        "created": "now",
        "config": {"Env": ["A=1"]},
        "Size": 42,
    }
    assert "parent" not in flat
    assert "container" not in flat
    # Original record is untouched
    assert record.parent == "p"


def test_repository_pointer_single_entry():
    """A single name and version yields the leaf layer ID."""
    pointer = RepositoryPointer.from_dict({"myimage": {"1.0": "abc"}})

    assert pointer == RepositoryPointer("myimage", "1.0", "abc")
    assert pointer.to_dict() == {"myimage": {"1.0": "abc"}}


@pytest.mark.parametrize(
    "data, message",
    [
        ({}, "no image names"),
        ([], "no image names"),
        ({"a": {"1": "x"}, "b": {"1": "y"}}, "more than one image name"),
        ({"a": {}}, "no versions"),
        ({"a": "x"}, "no versions"),
        ({"a": {"1": "x", "2": "y"}}, "more than one version"),
        ({"a": {"1": None}}, "does not point at a layer ID"),
    ],
)
def test_repository_pointer_rejects_ambiguous(data, message):
    """Empty or ambiguous repositories are fatal input errors."""
    with pytest.raises(MalformedImageError, match=message):
        RepositoryPointer.from_dict(data)


def test_layer_chain_accessors():
    """LayerChain exposes root, leaf and iteration order."""
    records = {
        "a": LayerRecord(id="a"),
        "b": LayerRecord(id="b", parent="a"),
    }
    chain = LayerChain(layer_ids=["a", "b"], records=records)

    assert list(chain) == ["a", "b"]
    assert len(chain) == 2
    assert chain.root == "a"
    assert chain.leaf == "b"
    assert chain.leaf_record is records["b"]
