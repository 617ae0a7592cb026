# Migration: 20240101120000_create_users.py
# Generated by dbmigrate

from dbmigrate.migrations import AbstractMigration


class CreateUsers(AbstractMigration):
    def change(self):
        (self.table("users", comment="Registered accounts")
            .add_column("email", "string", limit=190)
            .add_column("password_hash", "string", limit=255)
            .add_index("email", unique=True)
            .add_timestamps()
            .create())
