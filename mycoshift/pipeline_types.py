"""
Typed result dataclasses for step tracking and per-item failure reporting.
"""

import subprocess
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class StepStatus(str, Enum):
    """Pipeline step outcome status."""
    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _get_git_sha():
    """Return the short git SHA of HEAD, or None outside a repository."""
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],
            stderr=subprocess.DEVNULL,
            text=True,
        ).strip()
    except (subprocess.SubprocessError, FileNotFoundError):
        return None


@dataclass(frozen=True)
class FailedItem:
    """One species or species pair that could not be processed."""

    step_name: str
    item: str
    error_type: str
    message: str

    def to_dict(self):
        return asdict(self)


@dataclass
class StepResult:
    """Result of a single pipeline step execution."""

    step_name: str
    status: str  # "success", "skipped", "error"
    input_summary: dict = field(default_factory=dict)
    output_summary: dict = field(default_factory=dict)
    timing_seconds: float = 0.0
    failed_items: list = field(default_factory=list)
    warnings: list = field(default_factory=list)
    error: Optional[str] = None
    started_at: str = field(default_factory=_now_iso)

    @property
    def ok(self):
        return self.status == StepStatus.SUCCESS.value

    def to_dict(self):
        return {
            "step_name": self.step_name,
            "status": self.status,
            "input_summary": self.input_summary,
            "output_summary": self.output_summary,
            "timing_seconds": self.timing_seconds,
            "failed_items": [f.to_dict() for f in self.failed_items],
            "warnings": self.warnings,
            "error": self.error,
            "started_at": self.started_at,
        }

    @classmethod
    def from_dict(cls, d):
        return cls(
            step_name=d["step_name"],
            status=d["status"],
            input_summary=d.get("input_summary", {}),
            output_summary=d.get("output_summary", {}),
            timing_seconds=d.get("timing_seconds", 0.0),
            failed_items=[FailedItem(**f) for f in d.get("failed_items", [])],
            warnings=d.get("warnings", []),
            error=d.get("error"),
            started_at=d.get("started_at", ""),
        )


@dataclass
class PipelineRunResult:
    """Provenance for one complete pipeline execution."""

    output_dir: str = ""
    n_trees: int = 0
    n_fungi: int = 0
    band_width_deg: float = 0.0
    step_results: list = field(default_factory=list)
    total_time_seconds: float = 0.0
    output_files: list = field(default_factory=list)
    git_sha: Optional[str] = field(default_factory=_get_git_sha)
    started_at: str = field(default_factory=_now_iso)

    @property
    def all_ok(self):
        return all(s.ok for s in self.step_results)

    @property
    def failed_steps(self):
        return [s for s in self.step_results if not s.ok]

    @property
    def failed_items(self):
        return [f for s in self.step_results for f in s.failed_items]

    def to_dict(self):
        return {
            "output_dir": self.output_dir,
            "n_trees": self.n_trees,
            "n_fungi": self.n_fungi,
            "band_width_deg": self.band_width_deg,
            "steps": [s.to_dict() for s in self.step_results],
            "total_time_seconds": self.total_time_seconds,
            "output_files": self.output_files,
            "all_ok": self.all_ok,
            "n_failed_items": len(self.failed_items),
            "git_sha": self.git_sha,
            "started_at": self.started_at,
        }

    @classmethod
    def from_dict(cls, d):
        result = cls(
            output_dir=d.get("output_dir", ""),
            n_trees=d.get("n_trees", 0),
            n_fungi=d.get("n_fungi", 0),
            band_width_deg=d.get("band_width_deg", 0.0),
            total_time_seconds=d.get("total_time_seconds", 0.0),
            output_files=d.get("output_files", []),
            git_sha=d.get("git_sha"),
            started_at=d.get("started_at", ""),
        )
        result.step_results = [
            StepResult.from_dict(s) for s in d.get("steps", [])
        ]
        return result
