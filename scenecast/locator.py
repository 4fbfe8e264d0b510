"""
Finds a renderer's output file inside a working directory tree.

Manim writes to media/videos/<script>/<quality>/<Scene>.mp4 and the exact
nesting depends on flags and version, so the file is searched for rather than
predicted. The result is one of three states:
 - FOUND: the expected file exists
 - INCOMPLETE: it does not, but partial artifacts do (assembly failed)
 - ABSENT: nothing was produced at all
"""
import glob
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence


class LocateStatus(str, Enum):
    FOUND = "found"
    INCOMPLETE = "incomplete"
    ABSENT = "absent"


@dataclass
class LocateResult:
    status: LocateStatus
    path: Optional[Path] = None
    partials: List[Path] = field(default_factory=list)


PARTIAL_MARKERS = ("uncached_", "partial")


class ArtifactLocator:
    def __init__(self, filename: str, candidates: Sequence[str] = (), partial_markers: Sequence[str] = PARTIAL_MARKERS):
        self.filename = filename
        self.candidates = list(candidates)
        self.partial_markers = tuple(partial_markers)

    def scan(self, root: Path) -> Optional[Path]:
        pattern = os.path.join(glob.escape(str(root)), "**", self.filename)
        for match in sorted(glob.glob(pattern, recursive=True)):
            if os.path.isfile(match):
                return Path(match)
        return None

    def check_candidates(self, root: Path) -> Optional[Path]:
        for rel in self.candidates:
            path = Path(root) / rel
            if path.is_file():
                return path
        return None

    def find_partials(self, root: Path) -> List[Path]:
        partials = []
        for dirpath, _dirnames, filenames in os.walk(root):
            for name in sorted(filenames):
                if any(marker in name for marker in self.partial_markers):
                    partials.append(Path(dirpath) / name)
        return partials

    def locate(self, root: Path) -> LocateResult:
        root = Path(root)
        if not root.is_dir():
            return LocateResult(LocateStatus.ABSENT)

        found = self.scan(root) or self.check_candidates(root)
        if found is not None:
            return LocateResult(LocateStatus.FOUND, path=found)

        partials = self.find_partials(root)
        if partials:
            return LocateResult(LocateStatus.INCOMPLETE, partials=partials)
        return LocateResult(LocateStatus.ABSENT)
