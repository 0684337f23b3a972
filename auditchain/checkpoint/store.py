"""
Local checkpoint storage.

One JSON file per checkpoint, named cp_{entry_id:012d}_{hash_prefix}.json.
Files are created exclusively and never rewritten; point the directory at
storage the audit database's operators cannot write to.
"""

from pathlib import Path
from typing import List, Optional

from ..core.errors import IntegrityError
from .model import ChainCheckpoint


class CheckpointStore:
    def __init__(self, directory: str):
        self.directory = Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)

    def save(self, checkpoint: ChainCheckpoint) -> str:
        """
        Write checkpoint to disk.

        Returns:
            Path of the new file

        Raises:
            IntegrityError: If a checkpoint with the same name already exists
        """
        filepath = self.directory / checkpoint.filename
        try:
            with open(filepath, "x") as f:
                f.write(checkpoint.to_json())
        except FileExistsError as ex:
            raise IntegrityError(f"checkpoint already exists: {filepath}") from ex
        return str(filepath)

    def load(self, filepath: str) -> ChainCheckpoint:
        with open(filepath, "r") as f:
            return ChainCheckpoint.from_json(f.read())

    def list_checkpoints(self) -> List[str]:
        """Checkpoint paths, oldest entry first."""
        return sorted(str(p) for p in self.directory.glob("cp_*.json"))

    def find_latest(self) -> Optional[str]:
        checkpoints = self.list_checkpoints()
        return checkpoints[-1] if checkpoints else None
