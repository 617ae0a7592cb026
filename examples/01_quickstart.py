"""Quickstart: connect, create a table, alter it, insert rows."""

from dbmigrate import Table, get_adapter


def main():
    adapter = get_adapter({"adapter": "sqlite", "name": ":memory:"})
    adapter.connect()

    # Create
    (
        Table("users", adapter=adapter)
        .add_column("email", "string", limit=190)
        .add_column("active", "boolean", default=True)
        .add_index("email", unique=True)
        .add_timestamps()
        .create()
    )

    # Alter: SQLite rebuilds the table behind the scenes
    users = Table("users", adapter=adapter)
    users.add_column("nickname", "string", null=True, after="email")
    users.rename_column("active", "enabled")
    users.update()

    # Insert
    users.insert([
        {"email": "alice@example.com", "nickname": "alice"},
        {"email": "bob@example.com", "nickname": "bob"},
    ]).save()

    for column in users.get_columns():
        print(f"{column.name}: {column.type}")
    print(adapter.fetch_all("SELECT id, email FROM users"))

    adapter.disconnect()


if __name__ == "__main__":
    main()
