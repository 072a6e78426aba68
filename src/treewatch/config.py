"""Watcher configuration loaded from environment variables."""
from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from treewatch.ignore import IgnoreSpec


def _split(raw: str) -> frozenset[str]:
    return frozenset(item.strip() for item in raw.split(",") if item.strip())


class Settings(BaseSettings):
    """Watcher configuration loaded from environment variables.

    Attributes:
        ignore_dirs_raw: Comma-separated directory names or paths to skip.
        ignore_files_raw: Comma-separated file names or stems to skip.
        ignore_exts_raw: Comma-separated extensions to skip.
        timeout_ms: Milliseconds added to the base debounce interval.
        debug: Enable debug-level logging.
        log_json: Render logs as JSON instead of console output.
    """

    model_config = SettingsConfigDict(
        env_prefix="TREEWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    ignore_dirs_raw: str = ".git,node_modules,__pycache__"
    ignore_files_raw: str = ".DS_Store"
    ignore_exts_raw: str = "swp,swo,swx,tmp"
    timeout_ms: int = Field(default=0, ge=0)
    debug: bool = False
    log_json: bool = True

    @computed_field
    @property
    def ignore_dirs(self) -> frozenset[str]:
        """Parse ignored directories from comma-separated string.

        Returns:
            Set of directory names or full paths.
        """
        return _split(self.ignore_dirs_raw)

    @computed_field
    @property
    def ignore_files(self) -> frozenset[str]:
        """Parse ignored file names from comma-separated string.

        Returns:
            Set of file base names or stems.
        """
        return _split(self.ignore_files_raw)

    @computed_field
    @property
    def ignore_exts(self) -> frozenset[str]:
        """Parse ignored extensions from comma-separated string.

        Returns:
            Set of extensions, dotted or bare.
        """
        return _split(self.ignore_exts_raw)

    def ignore_spec(self) -> IgnoreSpec:
        """Build the ignore rules described by these settings."""
        return IgnoreSpec(
            dirs=self.ignore_dirs,
            files=self.ignore_files,
            exts=self.ignore_exts,
        )
