"""
Rich progress bar for bulk migration.

Single share/import/rate calls finish too quickly to need a bar; only
migrate_all() renders one, with one tick per library playlist.

Usage:
    from playlist_sync.core.progress import MigrationProgressBar

    with MigrationProgressBar(total=len(playlists)) as bar:
        async for item in service.iter_migrate():
            bar.update(migrated=item.migrated, skipped=item.skipped)
"""

from typing import Optional

from rich import get_console
from rich.progress import BarColumn, Progress, TaskID, TextColumn
from rich.theme import Theme


MIGRATION_THEME = Theme({
    "bar.back": "grey23",
    "bar.complete": "rgb(165,66,129)",
    "bar.finished": "rgb(114,156,31)",
    "progress.percentage": "white",
})


class MigrationProgressBar:
    """
    Migrated / failed / already-present counters next to a bar.

    Example:
        Migrating    ✓ 12  ✗ 1  ⊘ 4    ━━━━━━━━━━━━━━━━━  71%
    """

    def __init__(self, total: int, description: str = "Migrating"):
        self.total = total
        self.description = description
        self.completed = 0
        self.migrated = 0
        self.failed = 0
        self.skipped = 0

        self.console = get_console()
        self.progress = Progress(
            TextColumn("[white]{task.description:<12}"),
            TextColumn("{task.fields[status]}", style="white"),
            BarColumn(bar_width=40),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=self.console,
            transient=False,
        )
        self.task_id: Optional[TaskID] = None

    def __enter__(self) -> "MigrationProgressBar":
        self.console.push_theme(MIGRATION_THEME)
        self.progress.start()
        self.task_id = self.progress.add_task(
            self.description, total=self.total, status=self._status_text()
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.progress.stop()
        self.console.pop_theme()

    def _status_text(self) -> str:
        text = f"[green]✓ {self.migrated}[/green]  [red]✗ {self.failed}[/red]"
        if self.skipped:
            text += f"  [yellow]⊘ {self.skipped}[/yellow]"
        return text

    def update(self, migrated: bool, skipped: bool = False) -> None:
        """
        Record one processed playlist.

        Args:
            migrated: Whether the playlist was written to the account.
            skipped: Whether it was already there (counts as success).
        """
        self.completed += 1
        if skipped:
            self.skipped += 1
        elif migrated:
            self.migrated += 1
        else:
            self.failed += 1

        if self.task_id is not None:
            self.progress.update(self.task_id, completed=self.completed, status=self._status_text())
