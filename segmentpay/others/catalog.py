import re
from pathlib import Path
from typing import Optional

from .errors import SegmentNotFound

PLAYLIST_NAME = "playlist.m3u8"
PLAYLIST_MEDIA_TYPE = "application/vnd.apple.mpegurl"
SEGMENT_MEDIA_TYPE = "video/MP2T"

_SEGMENT_REF = re.compile(r"segment_(\d+)\.ts")

# Longer ids cannot name a file on any filesystem we serve from
MAX_SEGMENT_ID_LENGTH = 12


def canonical_segment_id(segment_id: str) -> str:
    """`7`, `07` and `007` are the same segment and share one paid-set key."""
    if (
        segment_id.isascii()
        and segment_id.isdigit()
        and len(segment_id) <= MAX_SEGMENT_ID_LENGTH
    ):
        return str(int(segment_id))
    return segment_id


class Catalog:
    """Segments on disk: `segment_NNN.ts` files next to `playlist.m3u8`."""

    def __init__(self, segments_dir: Path, unit_prefix: str = "/unit"):
        self.segments_dir = Path(segments_dir)
        self.unit_prefix = unit_prefix.rstrip("/")

    @property
    def playlist_path(self) -> Path:
        return self.segments_dir / PLAYLIST_NAME

    def segment_path(self, segment_id: str) -> Optional[Path]:
        if (
            not segment_id.isascii()
            or not segment_id.isdigit()
            or len(segment_id) > MAX_SEGMENT_ID_LENGTH
        ):
            return None
        path = self.segments_dir / f"segment_{canonical_segment_id(segment_id).zfill(3)}.ts"
        try:
            return path if path.is_file() else None
        except OSError:
            return None

    def has_segment(self, segment_id: str) -> bool:
        return self.segment_path(segment_id) is not None

    def require_segment(self, segment_id: str) -> Path:
        path = self.segment_path(segment_id)
        if path is None:
            raise SegmentNotFound(segment_id)
        return path

    def playlist(self) -> Optional[str]:
        """Playlist text with segment references pointed at the paid route."""
        if not self.playlist_path.is_file():
            return None
        text = self.playlist_path.read_text(encoding="utf-8")
        return _SEGMENT_REF.sub(lambda m: f"{self.unit_prefix}/{m.group(1)}", text)
