"""Temporary on-disk storage for generated scripts."""

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Union

from src.models.data_models import GeneratedScript


class ScriptStore:
    """
    Writes generated scripts where the application can load them.

    Each script lands in its own file named after its family and id, so
    concurrent requests never share a file. The file is removed when the
    ``materialize`` block exits, however it exits.
    """

    def __init__(
        self,
        directory: Optional[Union[str, Path]] = None,
        extension: str = ".swp",
        logger: Optional[Any] = None
    ):
        self.directory = Path(directory) if directory else Path(tempfile.gettempdir())
        self.extension = extension if extension.startswith(".") else f".{extension}"
        self.logger = logger

    def path_for(self, script: GeneratedScript) -> Path:
        return self.directory / f"{script.family}_{script.script_id}{self.extension}"

    @contextmanager
    def materialize(self, script: GeneratedScript) -> Iterator[Path]:
        """
        Write ``script`` to disk for the duration of the block.

        Yields:
            Absolute path of the written script file
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(script)
        path.write_text(script.text, encoding="utf-8")
        if self.logger:
            self.logger.script_written(script_id=script.script_id, family=script.family, path=str(path))
        try:
            yield path
        finally:
            removed = self._remove(path)
            if self.logger:
                self.logger.script_cleanup(script_id=script.script_id, path=str(path), removed=removed)

    def _remove(self, path: Path) -> bool:
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            if self.logger:
                self.logger.log("script_cleanup_error", path=str(path), error=str(e))
            return False
