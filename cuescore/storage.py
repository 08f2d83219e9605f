import json
import datetime
import logging
import pickle
import sqlite3
import threading
from pathlib import Path
from typing import Generator, Iterable
from contextlib import contextmanager
from urllib.parse import urlparse

import psycopg2
import psycopg2.extras
import redis


from .config import (
    DB_FILE,
    get_database_url,
    get_redis_url,
    get_cache_ttl,
)
from .models import (
    User,
    Friend,
    FriendRequest,
    Match,
    Group,
    GroupMember,
    GroupMatch,
    GuestPlayer,
    GroupPreference,
)

logger = logging.getLogger(__name__)

# ``DB_FILE`` is imported from ``cuescore.config`` so tests can monkeypatch it.
DATABASE_URL = get_database_url()
IS_PG = DATABASE_URL.startswith("postgres")

# Errors raised by either backend; services translate them at their boundary.
DB_ERRORS = (sqlite3.Error, psycopg2.Error)

# Optional Redis cache
REDIS_URL = get_redis_url()
CACHE_TTL = get_cache_ttl()
_redis = redis.from_url(REDIS_URL) if REDIS_URL else None

# collection name -> (table, id column) for group scoped collections
GROUP_COLLECTIONS = {
    "groupMembers": ("group_members", "id"),
    "groupMatches": ("group_matches", "id"),
    "userGroupPreferences": ("user_group_preferences", "id"),
    "unregisteredGroupUsers": ("unregistered_group_users", "id"),
}


class _PgCursor:
    def __init__(self, cursor):
        self._c = cursor

    def execute(self, query, params=None):
        q = query.replace("?", "%s")
        self._c.execute(q, params or [])
        return self

    def executemany(self, query, seq):
        q = query.replace("?", "%s")
        self._c.executemany(q, seq)
        return self

    def fetchone(self):
        return self._c.fetchone()

    def fetchall(self):
        return self._c.fetchall()

    def __iter__(self):
        return iter(self._c)

    def __getattr__(self, name):
        return getattr(self._c, name)


class _PgConnection:
    def __init__(self, conn):
        self._conn = conn

    def cursor(self, *a, **kw):
        return _PgCursor(self._conn.cursor(*a, **kw))

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()

    def __getattr__(self, name):
        return getattr(self._conn, name)


# databases whose schema was already created in this process
_schema_ready: set[str] = set()
# cache keys to drop once the surrounding transaction commits
_local = threading.local()


def _load_cache(key: str):
    if not _redis:
        return None
    try:
        data = _redis.get(key)
        if data is not None:
            return pickle.loads(data)
    except redis.RedisError:
        logger.warning("Redis read failed for %s", key)
    return None


def _save_cache(key: str, value: object) -> None:
    if not _redis:
        return
    try:
        _redis.setex(key, CACHE_TTL, pickle.dumps(value))
    except redis.RedisError:
        logger.warning("Redis write failed for %s", key)


def _drop_cache(key: str) -> None:
    if not _redis:
        return
    try:
        _redis.delete(key)
    except redis.RedisError:
        logger.warning("Redis delete failed for %s", key)


def _invalidate(key: str, conn) -> None:
    """Drop ``key`` now, or after commit when running inside a batch."""
    if conn is None:
        _drop_cache(key)
    else:
        _local.__dict__.setdefault("pending", []).append(key)


def _flush_pending(drop: bool) -> None:
    pending = _local.__dict__.pop("pending", [])
    if drop:
        for key in pending:
            _drop_cache(key)


def invalidate_cache() -> None:
    """Forget schema state and cached documents."""
    _schema_ready.clear()
    _local.__dict__.pop("pending", None)
    if _redis:
        try:
            for key in _redis.scan_iter("cuescore:*"):
                _redis.delete(key)
        except redis.RedisError:
            logger.warning("Redis flush failed")


def _sqlite_path() -> Path:
    if DATABASE_URL.startswith("sqlite://"):
        path = urlparse(DATABASE_URL).path
        if path:
            return Path(path)
    return DB_FILE


def _connect():
    """Return a DB connection based on ``DATABASE_URL``."""
    if IS_PG:
        conn = _PgConnection(
            psycopg2.connect(DATABASE_URL, cursor_factory=psycopg2.extras.RealDictCursor)
        )
        key = DATABASE_URL
    else:
        path = _sqlite_path()
        conn = sqlite3.connect(path)
        conn.row_factory = sqlite3.Row
        key = str(path)
    if key not in _schema_ready:
        _init_schema(conn)
        _schema_ready.add(key)
    return conn


@contextmanager
def transaction() -> Generator[object, None, None]:
    """Context manager yielding a connection for one atomic write batch."""
    conn = _connect()
    _local.__dict__.pop("pending", None)
    try:
        yield conn
        conn.commit()
        _flush_pending(True)
    except Exception:
        conn.rollback()
        _flush_pending(False)
        raise
    finally:
        conn.close()


@contextmanager
def _cursor(conn=None):
    """Yield a cursor on ``conn`` or on a short lived connection of our own."""
    close = conn is None
    if conn is None:
        conn = _connect()
    try:
        yield conn.cursor()
        if close:
            conn.commit()
    finally:
        if close:
            conn.close()


def _init_schema(conn) -> None:
    cur = conn.cursor()
    cur.execute(
        """CREATE TABLE IF NOT EXISTS users (
        user_id TEXT PRIMARY KEY,
        display_name TEXT,
        display_name_lower TEXT,
        email TEXT,
        created_at TEXT,
        secret_hash TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS auth_tokens (
        token TEXT PRIMARY KEY,
        user_id TEXT,
        ts TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS friends (
        id TEXT PRIMARY KEY,
        user_id TEXT,
        user_name TEXT,
        friend_id TEXT,
        friend_name TEXT,
        added_at TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS friend_requests (
        id TEXT PRIMARY KEY,
        from_user_id TEXT,
        from_user_name TEXT,
        to_user_id TEXT,
        to_user_name TEXT,
        status TEXT,
        created_at TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS matches (
        id TEXT PRIMARY KEY,
        player1_id TEXT,
        player1_name TEXT,
        player2_id TEXT,
        player2_name TEXT,
        winner_id TEXT,
        winner_name TEXT,
        date TEXT,
        created_at TEXT,
        created_by TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS groups (
        group_id TEXT PRIMARY KEY,
        name TEXT,
        created_by TEXT,
        created_at TEXT,
        member_ids TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS group_members (
        id TEXT PRIMARY KEY,
        group_id TEXT,
        user_id TEXT,
        user_name TEXT,
        joined_at TEXT
    )"""
    )
    cur.execute(
        "CREATE TABLE IF NOT EXISTS group_matches (id TEXT PRIMARY KEY, group_id TEXT, date TEXT, data TEXT)"
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS unregistered_group_users (
        id TEXT PRIMARY KEY,
        group_id TEXT,
        name TEXT,
        created_at TEXT,
        created_by TEXT,
        linked_to_user_id TEXT,
        linked_at TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS user_group_preferences (
        id TEXT PRIMARY KEY,
        user_id TEXT,
        group_id TEXT,
        preferred_view TEXT,
        last_updated TEXT
    )"""
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_users_name ON users(display_name_lower)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_friends_user ON friends(user_id)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_requests_to ON friend_requests(to_user_id)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_members_group ON group_members(group_id)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_members_user ON group_members(user_id)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_group_matches_group ON group_matches(group_id)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_guests_group ON unregistered_group_users(group_id)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_prefs_group ON user_group_preferences(group_id)")
    conn.commit()


# --- value helpers ---------------------------------------------------------

def _ts(value: datetime.datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(value: str | None) -> datetime.datetime | None:
    return datetime.datetime.fromisoformat(value) if value else None


def _parse_date(value: str) -> datetime.date:
    return datetime.date.fromisoformat(value[:10])


# --- users ---------------------------------------------------------------

def _row_to_user(row) -> User:
    return User(
        user_id=row["user_id"],
        display_name=row["display_name"],
        email=row["email"],
        created_at=_parse_ts(row["created_at"]),
        secret_hash=row["secret_hash"],
    )


def create_user(user: User, conn=None) -> None:
    """Insert a new user document."""
    with _cursor(conn) as cur:
        cur.execute(
            "INSERT INTO users(user_id, display_name, display_name_lower, email, created_at, secret_hash) VALUES (?,?,?,?,?,?)",
            (
                user.user_id,
                user.display_name,
                user.display_name_lower,
                user.email,
                _ts(user.created_at),
                user.secret_hash,
            ),
        )
    _invalidate(f"cuescore:user:{user.user_id}", conn)


def get_user(user_id: str) -> User | None:
    """Return a single :class:`User` by id or ``None`` if not found."""
    key = f"cuescore:user:{user_id}"
    cached = _load_cache(key)
    if cached:
        return cached
    with _cursor() as cur:
        row = cur.execute("SELECT * FROM users WHERE user_id = ?", (user_id,)).fetchone()
    if not row:
        return None
    user = _row_to_user(row)
    _save_cache(key, user)
    return user


def find_user_by_name(name_lower: str) -> User | None:
    """Return the user whose lower-cased display name equals ``name_lower``."""
    with _cursor() as cur:
        row = cur.execute(
            "SELECT * FROM users WHERE display_name_lower = ?",
            (name_lower,),
        ).fetchone()
    return _row_to_user(row) if row else None


def search_users_by_prefix(prefix: str, limit: int = 20) -> list[User]:
    """Return users whose lower-cased display name starts with ``prefix``."""
    with _cursor() as cur:
        rows = cur.execute(
            "SELECT * FROM users WHERE display_name_lower >= ? AND display_name_lower <= ? "
            "ORDER BY display_name_lower LIMIT ?",
            (prefix, prefix + "\uf8ff", limit),
        ).fetchall()
    return [_row_to_user(r) for r in rows]


# --- auth tokens -----------------------------------------------------------

def insert_token(token: str, user_id: str) -> None:
    """Persist or update an authentication token."""
    with _cursor() as cur:
        cur.execute(
            """
            INSERT INTO auth_tokens(token, user_id, ts) VALUES (?,?,?)
            ON CONFLICT (token) DO UPDATE SET user_id = excluded.user_id, ts = excluded.ts
            """,
            (token, user_id, datetime.datetime.utcnow().isoformat()),
        )


def delete_token(token: str) -> None:
    """Remove an authentication token."""
    with _cursor() as cur:
        cur.execute("DELETE FROM auth_tokens WHERE token = ?", (token,))


def get_token(token: str) -> tuple[str, datetime.datetime] | None:
    """Retrieve a ``(user_id, timestamp)`` tuple for the token."""
    with _cursor() as cur:
        row = cur.execute(
            "SELECT user_id, ts FROM auth_tokens WHERE token = ?",
            (token,),
        ).fetchone()
    if not row:
        return None
    return row["user_id"], datetime.datetime.fromisoformat(row["ts"])


# --- friends and requests ------------------------------------------------

def _row_to_friend(row) -> Friend:
    return Friend(
        id=row["id"],
        user_id=row["user_id"],
        user_name=row["user_name"],
        friend_id=row["friend_id"],
        friend_name=row["friend_name"],
        added_at=_parse_ts(row["added_at"]),
    )


def create_friend(friend: Friend, conn=None) -> None:
    with _cursor(conn) as cur:
        cur.execute(
            "INSERT INTO friends(id, user_id, user_name, friend_id, friend_name, added_at) VALUES (?,?,?,?,?,?)",
            (
                friend.id,
                friend.user_id,
                friend.user_name,
                friend.friend_id,
                friend.friend_name,
                _ts(friend.added_at),
            ),
        )


def get_friend_edge(user_id: str, friend_id: str, conn=None) -> Friend | None:
    """Return the ``user_id -> friend_id`` edge if it exists."""
    with _cursor(conn) as cur:
        row = cur.execute(
            "SELECT * FROM friends WHERE user_id = ? AND friend_id = ?",
            (user_id, friend_id),
        ).fetchone()
    return _row_to_friend(row) if row else None


def list_friends(user_id: str) -> list[Friend]:
    with _cursor() as cur:
        rows = cur.execute(
            "SELECT * FROM friends WHERE user_id = ? ORDER BY friend_name",
            (user_id,),
        ).fetchall()
    return [_row_to_friend(r) for r in rows]


def _row_to_request(row) -> FriendRequest:
    return FriendRequest(
        id=row["id"],
        from_user_id=row["from_user_id"],
        from_user_name=row["from_user_name"],
        to_user_id=row["to_user_id"],
        to_user_name=row["to_user_name"],
        status=row["status"],
        created_at=_parse_ts(row["created_at"]),
    )


def create_friend_request(request: FriendRequest, conn=None) -> None:
    with _cursor(conn) as cur:
        cur.execute(
            """
            INSERT INTO friend_requests(
                id, from_user_id, from_user_name, to_user_id, to_user_name, status, created_at
            ) VALUES (?,?,?,?,?,?,?)
            """,
            (
                request.id,
                request.from_user_id,
                request.from_user_name,
                request.to_user_id,
                request.to_user_name,
                request.status,
                _ts(request.created_at),
            ),
        )


def get_friend_request(request_id: str, conn=None) -> FriendRequest | None:
    with _cursor(conn) as cur:
        row = cur.execute(
            "SELECT * FROM friend_requests WHERE id = ?",
            (request_id,),
        ).fetchone()
    return _row_to_request(row) if row else None


def list_friend_requests(
    *,
    to_user_id: str | None = None,
    from_user_id: str | None = None,
    status: str | None = "pending",
) -> list[FriendRequest]:
    """Return requests filtered by recipient, sender and status."""
    clauses = []
    params: list[object] = []
    if to_user_id is not None:
        clauses.append("to_user_id = ?")
        params.append(to_user_id)
    if from_user_id is not None:
        clauses.append("from_user_id = ?")
        params.append(from_user_id)
    if status is not None:
        clauses.append("status = ?")
        params.append(status)
    where = " AND ".join(clauses) or "1 = 1"
    with _cursor() as cur:
        rows = cur.execute(
            f"SELECT * FROM friend_requests WHERE {where} ORDER BY created_at",
            params,
        ).fetchall()
    return [_row_to_request(r) for r in rows]


def delete_friend_request(request_id: str, conn=None, *, only_pending: bool = False) -> bool:
    """Delete a request and return ``True`` if a row was removed."""
    query = "DELETE FROM friend_requests WHERE id = ?"
    params: tuple = (request_id,)
    if only_pending:
        query += " AND status = ?"
        params = (request_id, "pending")
    with _cursor(conn) as cur:
        cur.execute(query, params)
        return cur.rowcount > 0


# --- 1:1 matches -----------------------------------------------------------

def _row_to_match(row) -> Match:
    return Match(
        id=row["id"],
        player1_id=row["player1_id"],
        player1_name=row["player1_name"],
        player2_id=row["player2_id"],
        player2_name=row["player2_name"],
        winner_id=row["winner_id"],
        winner_name=row["winner_name"],
        date=_parse_date(row["date"]),
        created_by=row["created_by"],
        created_at=_parse_ts(row["created_at"]),
    )


def create_match(match: Match, conn=None) -> None:
    """Insert a 1:1 match record."""
    with _cursor(conn) as cur:
        cur.execute(
            """
            INSERT INTO matches(
                id, player1_id, player1_name, player2_id, player2_name,
                winner_id, winner_name, date, created_at, created_by
            ) VALUES (?,?,?,?,?,?,?,?,?,?)
            """,
            (
                match.id,
                match.player1_id,
                match.player1_name,
                match.player2_id,
                match.player2_name,
                match.winner_id,
                match.winner_name,
                match.date.isoformat(),
                _ts(match.created_at),
                match.created_by,
            ),
        )


def get_match(match_id: str) -> Match | None:
    with _cursor() as cur:
        row = cur.execute("SELECT * FROM matches WHERE id = ?", (match_id,)).fetchone()
    return _row_to_match(row) if row else None


def list_matches_between(user_id: str, friend_id: str) -> list[Match]:
    """Return 1:1 matches between two players, newest first."""
    with _cursor() as cur:
        rows = cur.execute(
            """
            SELECT * FROM matches
            WHERE (player1_id = ? AND player2_id = ?) OR (player1_id = ? AND player2_id = ?)
            ORDER BY date DESC, created_at DESC
            """,
            (user_id, friend_id, friend_id, user_id),
        ).fetchall()
    return [_row_to_match(r) for r in rows]


def delete_match(match_id: str, conn=None) -> None:
    with _cursor(conn) as cur:
        cur.execute("DELETE FROM matches WHERE id = ?", (match_id,))


# --- groups ----------------------------------------------------------------

def _row_to_group(row) -> Group:
    return Group(
        group_id=row["group_id"],
        name=row["name"],
        created_by=row["created_by"],
        created_at=_parse_ts(row["created_at"]),
        member_ids=json.loads(row["member_ids"] or "[]"),
    )


def create_group(group: Group, conn=None) -> None:
    """Insert a new group document."""
    with _cursor(conn) as cur:
        cur.execute(
            "INSERT INTO groups(group_id, name, created_by, created_at, member_ids) VALUES (?,?,?,?,?)",
            (
                group.group_id,
                group.name,
                group.created_by,
                _ts(group.created_at),
                json.dumps(group.member_ids),
            ),
        )
    _invalidate(f"cuescore:group:{group.group_id}", conn)


def get_group(group_id: str, conn=None) -> Group | None:
    """Return a single :class:`Group` by id or ``None`` if not found.

    Reads inside a batch (``conn`` given) bypass the cache.
    """
    key = f"cuescore:group:{group_id}"
    if conn is None:
        cached = _load_cache(key)
        if cached:
            return cached
    with _cursor(conn) as cur:
        row = cur.execute("SELECT * FROM groups WHERE group_id = ?", (group_id,)).fetchone()
    if not row:
        return None
    group = _row_to_group(row)
    if conn is None:
        _save_cache(key, group)
    return group


def add_group_member_id(group_id: str, user_id: str, conn=None) -> None:
    """Append ``user_id`` to the group's roster unless already present."""
    with _cursor(conn) as cur:
        row = cur.execute(
            "SELECT member_ids FROM groups WHERE group_id = ?",
            (group_id,),
        ).fetchone()
        if not row:
            return
        member_ids = json.loads(row["member_ids"] or "[]")
        if user_id in member_ids:
            return
        member_ids.append(user_id)
        cur.execute(
            "UPDATE groups SET member_ids = ? WHERE group_id = ?",
            (json.dumps(member_ids), group_id),
        )
    _invalidate(f"cuescore:group:{group_id}", conn)


def delete_group(group_id: str, conn=None) -> None:
    """Remove the group document only; dependent collections are drained separately."""
    with _cursor(conn) as cur:
        cur.execute("DELETE FROM groups WHERE group_id = ?", (group_id,))
    _invalidate(f"cuescore:group:{group_id}", conn)


def list_group_document_ids(collection: str, group_id: str) -> list[str]:
    """Return ids of every document in ``collection`` belonging to the group."""
    table, key = GROUP_COLLECTIONS[collection]
    with _cursor() as cur:
        rows = cur.execute(
            f"SELECT {key} FROM {table} WHERE group_id = ? ORDER BY {key}",
            (group_id,),
        ).fetchall()
    return [r[key] for r in rows]


def delete_documents(collection: str, ids: Iterable[str], conn=None) -> None:
    table, key = GROUP_COLLECTIONS[collection]
    with _cursor(conn) as cur:
        cur.executemany(f"DELETE FROM {table} WHERE {key} = ?", [(i,) for i in ids])


# --- group members ---------------------------------------------------------

def _row_to_member(row) -> GroupMember:
    return GroupMember(
        id=row["id"],
        group_id=row["group_id"],
        user_id=row["user_id"],
        user_name=row["user_name"],
        joined_at=_parse_ts(row["joined_at"]),
    )


def create_group_member(member: GroupMember, conn=None) -> None:
    with _cursor(conn) as cur:
        cur.execute(
            "INSERT INTO group_members(id, group_id, user_id, user_name, joined_at) VALUES (?,?,?,?,?)",
            (
                member.id,
                member.group_id,
                member.user_id,
                member.user_name,
                _ts(member.joined_at),
            ),
        )


def get_group_member(group_id: str, user_id: str, conn=None) -> GroupMember | None:
    with _cursor(conn) as cur:
        row = cur.execute(
            "SELECT * FROM group_members WHERE group_id = ? AND user_id = ?",
            (group_id, user_id),
        ).fetchone()
    return _row_to_member(row) if row else None


def list_group_members(group_id: str) -> list[GroupMember]:
    with _cursor() as cur:
        rows = cur.execute(
            "SELECT * FROM group_members WHERE group_id = ? ORDER BY joined_at, id",
            (group_id,),
        ).fetchall()
    return [_row_to_member(r) for r in rows]


def list_user_memberships(user_id: str) -> list[GroupMember]:
    """Return the user's memberships, most recently joined first."""
    with _cursor() as cur:
        rows = cur.execute(
            "SELECT * FROM group_members WHERE user_id = ? ORDER BY joined_at DESC",
            (user_id,),
        ).fetchall()
    return [_row_to_member(r) for r in rows]


# --- group matches -----------------------------------------------------------

def _group_match_data(match: GroupMatch) -> dict:
    return {
        "team_a": match.team_a,
        "team_b": match.team_b,
        "team_a_names": match.team_a_names,
        "team_b_names": match.team_b_names,
        "winning_team": match.winning_team,
        "created_at": _ts(match.created_at),
        "created_by": match.created_by,
        "points_awarded": match.points_awarded,
        "all_player_ids": match.all_player_ids,
    }


def _row_to_group_match(row) -> GroupMatch:
    data = json.loads(row["data"])
    return GroupMatch(
        id=row["id"],
        group_id=row["group_id"],
        team_a=data.get("team_a", []),
        team_b=data.get("team_b", []),
        team_a_names=data.get("team_a_names", []),
        team_b_names=data.get("team_b_names", []),
        winning_team=data["winning_team"],
        date=_parse_date(row["date"]),
        created_by=data.get("created_by"),
        points_awarded=data.get("points_awarded", 0),
        created_at=_parse_ts(data.get("created_at")),
        all_player_ids=data.get("all_player_ids", []),
    )


def create_group_match(match: GroupMatch, conn=None) -> None:
    """Insert a group match record."""
    with _cursor(conn) as cur:
        cur.execute(
            "INSERT INTO group_matches(id, group_id, date, data) VALUES (?,?,?,?)",
            (
                match.id,
                match.group_id,
                match.date.isoformat(),
                json.dumps(_group_match_data(match)),
            ),
        )


def update_group_match(match: GroupMatch, conn=None) -> None:
    """Rewrite the JSON data of an existing group match."""
    with _cursor(conn) as cur:
        cur.execute(
            "UPDATE group_matches SET data = ? WHERE id = ?",
            (json.dumps(_group_match_data(match)), match.id),
        )


def get_group_match(match_id: str) -> GroupMatch | None:
    with _cursor() as cur:
        row = cur.execute("SELECT * FROM group_matches WHERE id = ?", (match_id,)).fetchone()
    return _row_to_group_match(row) if row else None


def list_group_matches(group_id: str) -> list[GroupMatch]:
    """Return the group's matches, newest first."""
    with _cursor() as cur:
        rows = cur.execute(
            "SELECT * FROM group_matches WHERE group_id = ? ORDER BY date DESC, id",
            (group_id,),
        ).fetchall()
    return [_row_to_group_match(r) for r in rows]


def delete_group_match(match_id: str, conn=None) -> None:
    with _cursor(conn) as cur:
        cur.execute("DELETE FROM group_matches WHERE id = ?", (match_id,))


# --- guests ------------------------------------------------------------------

def _row_to_guest(row) -> GuestPlayer:
    return GuestPlayer(
        id=row["id"],
        group_id=row["group_id"],
        name=row["name"],
        created_by=row["created_by"],
        created_at=_parse_ts(row["created_at"]),
        linked_to_user_id=row["linked_to_user_id"],
        linked_at=_parse_ts(row["linked_at"]),
    )


def create_guest(guest: GuestPlayer, conn=None) -> None:
    with _cursor(conn) as cur:
        cur.execute(
            """
            INSERT INTO unregistered_group_users(
                id, group_id, name, created_at, created_by, linked_to_user_id, linked_at
            ) VALUES (?,?,?,?,?,?,?)
            """,
            (
                guest.id,
                guest.group_id,
                guest.name,
                _ts(guest.created_at),
                guest.created_by,
                guest.linked_to_user_id,
                _ts(guest.linked_at),
            ),
        )


def get_guest(guest_id: str, conn=None) -> GuestPlayer | None:
    with _cursor(conn) as cur:
        row = cur.execute(
            "SELECT * FROM unregistered_group_users WHERE id = ?",
            (guest_id,),
        ).fetchone()
    return _row_to_guest(row) if row else None


def list_guests(group_id: str, conn=None) -> list[GuestPlayer]:
    with _cursor(conn) as cur:
        rows = cur.execute(
            "SELECT * FROM unregistered_group_users WHERE group_id = ? ORDER BY created_at, id",
            (group_id,),
        ).fetchall()
    return [_row_to_guest(r) for r in rows]


def delete_guest(guest_id: str, conn=None) -> None:
    with _cursor(conn) as cur:
        cur.execute("DELETE FROM unregistered_group_users WHERE id = ?", (guest_id,))


# --- view preferences --------------------------------------------------------

def get_preference(user_id: str, group_id: str) -> GroupPreference | None:
    with _cursor() as cur:
        row = cur.execute(
            "SELECT * FROM user_group_preferences WHERE id = ?",
            (f"{user_id}_{group_id}",),
        ).fetchone()
    if not row:
        return None
    return GroupPreference(
        user_id=row["user_id"],
        group_id=row["group_id"],
        preferred_view=row["preferred_view"],
        last_updated=_parse_ts(row["last_updated"]),
    )


def set_preference(pref: GroupPreference, conn=None) -> None:
    """Insert or replace a user's preferred view for a group."""
    with _cursor(conn) as cur:
        cur.execute(
            """
            INSERT INTO user_group_preferences(id, user_id, group_id, preferred_view, last_updated)
            VALUES (?,?,?,?,?)
            ON CONFLICT (id) DO UPDATE SET
                preferred_view = excluded.preferred_view,
                last_updated = excluded.last_updated
            """,
            (
                pref.id,
                pref.user_id,
                pref.group_id,
                pref.preferred_view,
                _ts(pref.last_updated),
            ),
        )
