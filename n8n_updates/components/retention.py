"""
HOMESERVER n8n Update Components
Copyright (C) 2024 HOMESERVER LLC

Retention Manager Component

Offers to delete old backup records once at least two earlier ones exist.
"""

from datetime import date
from typing import Optional

from n8n_updates.utils.index import log_message
from n8n_updates.utils.config import UpgradeConfig
from n8n_updates.utils.prompts import ConfirmationProvider
from n8n_updates.utils.state_manager import BackupStore


class RetentionManager:
    """Interactive cleanup of backup records older than a chosen age."""

    def __init__(self, config: UpgradeConfig, store: BackupStore, prompter: ConfirmationProvider):
        self.config = config
        self.store = store
        self.prompter = prompter

    def cleanup_older_than(self, days: int, today: Optional[date] = None) -> int:
        """
        Delete records whose date part is before today minus `days`.

        Returns:
            int: Number of records deleted
        """
        cutoff = self.store.cutoff_for(days, today)
        log_message(f"[RETENTION] Looking for backups older than {days} days (before {cutoff})...")
        deleted = self.store.delete_before(cutoff)
        if deleted:
            log_message(f"[RETENTION] ✓ Removed {len(deleted)} old backup(s).")
        else:
            log_message("[RETENTION] No old backups found to remove.")
        return len(deleted)

    def offer(self, today: Optional[date] = None) -> int:
        """
        Prompt for cleanup when two or more records exist.

        Runs after this upgrade's record has been created, so that record
        counts towards the threshold.

        Args:
            today: Reference date for the cutoff (defaults to today)

        Returns:
            int: Number of records deleted
        """
        existing = self.store.count()
        if existing < 2:
            return 0

        choices = self.config.retention_choices
        log_message(f"You have {existing} existing backups.")
        log_message("Would you like to clean up old backups?")
        for key, days in sorted(choices.items()):
            log_message(f"  {key}) Remove backups older than {days} days")
        skip_choice = str(len(choices) + 1)
        log_message(f"  {skip_choice}) Skip cleanup")

        choice = self.prompter.ask(f"Enter choice [1-{skip_choice}]: ")
        if choice in choices:
            return self.cleanup_older_than(choices[choice], today)
        if choice in (skip_choice, ""):
            log_message("[RETENTION] Skipping backup cleanup.")
        else:
            log_message("[RETENTION] Invalid choice. Skipping cleanup.", "WARNING")
        return 0
