from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ProjectPaths:
    """Container for key project directories."""

    root: Path
    data: Path
    outputs: Path
    figures: Path
    models: Path
    logs: Path

    @classmethod
    def from_root(cls, root: Path, data_dir: Path | None = None) -> "ProjectPaths":
        data = Path(data_dir).resolve() if data_dir is not None else (root / "data").resolve()
        outputs_dir = (root / "outputs").resolve()
        figures_dir = outputs_dir / "figures"
        models_dir = outputs_dir / "models"
        logs_dir = outputs_dir / "logs"
        for directory in (outputs_dir, figures_dir, models_dir, logs_dir):
            directory.mkdir(parents=True, exist_ok=True)
        return cls(
            root=root,
            data=data,
            outputs=outputs_dir,
            figures=figures_dir,
            models=models_dir,
            logs=logs_dir,
        )

    @property
    def clean_table(self) -> Path:
        return self.outputs / "nhanes_clean.parquet"


def get_project_paths(root: Path | None = None, data_dir: Path | None = None) -> ProjectPaths:
    """Return project paths, defaulting to the repository root."""

    if root is None:
        root = Path(__file__).resolve().parents[2]
    return ProjectPaths.from_root(Path(root), data_dir=data_dir)
