import pytest

from segmentpay.others.catalog import Catalog, canonical_segment_id
from segmentpay.others.errors import SegmentNotFound


@pytest.mark.parametrize(
    "segment_id,expected",
    [
        ("7", "7"),
        ("07", "7"),
        ("007", "7"),
        ("0", "0"),
        ("000", "0"),
        ("abc", "abc"),
        ("1" * 300, "1" * 300),
    ],
)
def test_canonical_segment_id(segment_id, expected):
    assert canonical_segment_id(segment_id) == expected


def test_padded_ids_resolve_to_same_file(segments_dir):
    catalog = Catalog(segments_dir)

    paths = {catalog.segment_path(i) for i in ("7", "07", "007")}

    assert paths == {segments_dir / "segment_007.ts"}


@pytest.mark.parametrize("segment_id", ["1" * 300, "9" * 5000, "٣", "1.5", ""])
def test_unservable_ids_are_absent(segments_dir, segment_id):
    catalog = Catalog(segments_dir)

    assert catalog.segment_path(segment_id) is None
    with pytest.raises(SegmentNotFound):
        catalog.require_segment(segment_id)


def test_playlist_points_at_unit_route(segments_dir):
    playlist = Catalog(segments_dir).playlist()

    assert "/unit/000" in playlist
    assert "/unit/007" in playlist
    assert "segment_007.ts" not in playlist
