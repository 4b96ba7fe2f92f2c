import sqlite3


def ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS folders (
          id TEXT PRIMARY KEY,
          name TEXT NOT NULL,
          path TEXT NOT NULL,
          date_added TEXT NOT NULL,
          file_count INTEGER NOT NULL DEFAULT 0 CHECK (file_count >= 0),
          artwork_path TEXT,
          parent_id TEXT REFERENCES folders(id) ON DELETE CASCADE,
          last_played_entry_id TEXT,
          last_played_position REAL NOT NULL DEFAULT 0,
          last_played_date TEXT
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS entries (
          id TEXT PRIMARY KEY,
          title TEXT,
          artist TEXT,
          album TEXT,
          genre TEXT,
          duration REAL NOT NULL DEFAULT 0 CHECK (duration >= 0),
          file_path TEXT NOT NULL,
          file_name TEXT NOT NULL,
          file_size INTEGER NOT NULL DEFAULT 0,
          date_added TEXT NOT NULL,
          last_played TEXT,
          play_count INTEGER NOT NULL DEFAULT 0 CHECK (play_count >= 0),
          current_position REAL NOT NULL DEFAULT 0 CHECK (current_position >= 0),
          artwork_path TEXT,
          folder_id TEXT REFERENCES folders(id) ON DELETE CASCADE
        );
        """
    )
    # Path-key identifies an imported directory or smart group
    conn.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_folders_path ON folders(path);")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_folders_parent ON folders(parent_id);")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_entries_folder ON entries(folder_id);")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_entries_file_path ON entries(file_path);")
