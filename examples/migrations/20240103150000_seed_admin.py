# Migration: 20240103150000_seed_admin.py
# Generated by dbmigrate

from dbmigrate.migrations import AbstractMigration


class SeedAdmin(AbstractMigration):
    def up(self):
        self.insert("users", {"email": "admin@example.com", "password_hash": "!"})

    def down(self):
        self.execute(
            "DELETE FROM users WHERE email = :email", {"email": "admin@example.com"}
        )
