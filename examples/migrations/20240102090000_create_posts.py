# Migration: 20240102090000_create_posts.py
# Generated by dbmigrate

from dbmigrate.migrations import AbstractMigration


class CreatePosts(AbstractMigration):
    def change(self):
        (self.table("posts")
            .add_column("user_id", "integer")
            .add_column("title", "string")
            .add_column("body", "text", null=True)
            .add_foreign_key("user_id", "users", "id", delete="CASCADE")
            .add_index(["user_id", "title"])
            .create())
